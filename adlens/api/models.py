"""
API Request and Response Models.

Pydantic models for FastAPI request/response validation and
automatic OpenAPI documentation generation.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, List
from datetime import datetime

from ..services.models import CachedMedia, CreativeRecord, MediaType


# ============================================================================
# Creative Request/Response Models
# ============================================================================

class CreativeFetchRequest(BaseModel):
    """Request model for a single-ad creative fetch."""
    ad_id: str = Field(..., description="Meta ad ID", min_length=1)
    meta_ad_account_id: str = Field(..., description="Meta ad account ID (act_...)", min_length=1)
    force_refresh: bool = Field(
        default=False,
        description="Re-fetch from Meta even if a stored creative is usable"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "ad_id": "120210000000000001",
                "meta_ad_account_id": "act_1234567890",
                "force_refresh": False
            }
        }


class CreativeBatchRequest(BaseModel):
    """Request model for a batch creative fetch."""
    ad_ids: List[str] = Field(
        ...,
        description="Meta ad IDs; duplicates are collapsed",
        max_length=500
    )
    meta_ad_account_id: str = Field(..., description="Meta ad account ID (act_...)", min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "ad_ids": ["120210000000000001", "120210000000000002"],
                "meta_ad_account_id": "act_1234567890"
            }
        }


class CreativeEnrichRequest(BaseModel):
    """Request model for re-fetching and enriching one creative."""
    ad_id: str = Field(..., description="Meta ad ID", min_length=1)
    meta_ad_account_id: str = Field(..., description="Meta ad account ID (act_...)", min_length=1)


class MediaCacheRequest(BaseModel):
    """Request model for caching one media file of an ad."""
    ad_id: str = Field(..., description="Meta ad ID", min_length=1)
    media_url: str = Field(..., description="Media URL to copy (e.g. a video source)", min_length=1)
    media_type: MediaType = Field(..., description="image, video or thumbnail")

    class Config:
        json_schema_extra = {
            "example": {
                "ad_id": "120210000000000001",
                "media_url": "https://video.xx.fbcdn.net/v/t42.1790-2/clip.mp4",
                "media_type": "video"
            }
        }


class CreativeResponse(BaseModel):
    """Response model for single-ad fetch and enrich."""
    success: bool = Field(..., description="Whether a creative was returned")
    creative: CreativeRecord = Field(..., description="Stored or freshly fetched creative")
    cached: bool = Field(default=False, description="True when served from the store without a Meta call")
    timestamp: datetime = Field(default_factory=datetime.now)


class MediaCacheResponse(BaseModel):
    """Response model for an on-demand media copy."""
    success: bool = Field(..., description="Whether the file was stored")
    media: CachedMedia = Field(..., description="Stored copy: signed URL, path and size")
    timestamp: datetime = Field(default_factory=datetime.now)


class CreativeBatchResponse(BaseModel):
    """
    Response model for batch fetch.

    Every requested ad ID appears in `creatives` or `errors` (or both, when
    a stored creative was kept after a failed upgrade).
    """
    success: bool = Field(..., description="Whether the batch ran")
    creatives: Dict[str, CreativeRecord] = Field(default_factory=dict, description="Creatives by ad ID")
    errors: Dict[str, str] = Field(default_factory=dict, description="Error message by ad ID")
    cached_count: int = Field(default=0, description="Creatives served from the store")
    fetched_count: int = Field(default=0, description="Creatives fetched from Meta")
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "creatives": {"120210000000000001": {"ad_id": "120210000000000001", "fetch_status": "success"}},
                "errors": {"120210000000000002": "HTTP 400"},
                "cached_count": 0,
                "fetched_count": 1,
                "timestamp": "2025-01-18T12:00:00Z"
            }
        }


# ============================================================================
# System Models
# ============================================================================

class HealthResponse(BaseModel):
    """Response model for health check endpoint."""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(default_factory=datetime.now)
    services: Dict[str, str] = Field(
        default_factory=dict,
        description="Status of dependent services (database, storage)"
    )


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Detailed error information")
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Workspace not found",
                "detail": "Workspace not found for user 7c9e6679-7425-40de-944b-e07fc1f90ae7",
                "timestamp": "2025-01-18T12:00:00Z"
            }
        }
