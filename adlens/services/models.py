"""
Pydantic models for the AdLens creative pipeline.

These models provide validated data structures for:
- Image/video resolution results (ImageResolution, VideoAsset)
- Durable cache results (CachedAssets)
- The persisted creative row (CreativeRecord)
- Pipeline outputs (BatchFetchResult, CreativeFetchResult)

All models use Pydantic v2 for validation and serialization.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Enums
# ============================================================================

class CreativeType(str, Enum):
    """How the ad presents its creative."""
    IMAGE = "image"
    VIDEO = "video"
    CAROUSEL = "carousel"
    DYNAMIC = "dynamic"
    UNKNOWN = "unknown"


class ImageQuality(str, Enum):
    """Quality grade of a resolved asset."""
    HD = "hd"
    SD = "sd"
    LOW = "low"
    UNKNOWN = "unknown"


class FetchStatus(str, Enum):
    """Outcome of the latest fetch attempt for a creative."""
    PENDING = "pending"
    PARTIAL = "partial"
    SUCCESS = "success"
    FAILED = "failed"


class MediaType(str, Enum):
    """Kinds of media a caller can ask to cache on demand"""
    IMAGE = "image"
    VIDEO = "video"
    THUMBNAIL = "thumbnail"


# ============================================================================
# Resolution Models
# ============================================================================

class ImageResolution(BaseModel):
    """
    Best still image found for a creative.

    `original_thumbnail` keeps the creative's small fast-load thumbnail even
    when a better main image was found. `provenance_tag` names the source
    that produced `url` ("none" when nothing did).
    """
    url: Optional[str] = None
    hd_url: Optional[str] = None
    original_thumbnail: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    quality: ImageQuality = ImageQuality.UNKNOWN
    provenance_tag: str = "none"

    @classmethod
    def empty(cls) -> "ImageResolution":
        return cls()

    @property
    def found(self) -> bool:
        return bool(self.url)


class VideoAsset(ImageResolution):
    """Video metadata plus its best poster image."""
    video_id: Optional[str] = None
    video_source_url: Optional[str] = None
    duration_seconds: Optional[float] = None
    format: Optional[str] = None

    def poster(self) -> ImageResolution:
        """The image part of this asset, as a plain resolution result."""
        return ImageResolution(
            url=self.url,
            hd_url=self.hd_url,
            original_thumbnail=self.original_thumbnail,
            width=self.width,
            height=self.height,
            quality=self.quality,
            provenance_tag=self.provenance_tag,
        )


class CreativeTexts(BaseModel):
    """Copy extracted from a creative and its originating post."""
    title: Optional[str] = None
    body: Optional[str] = None
    description: Optional[str] = None
    call_to_action: Optional[str] = None
    link_url: Optional[str] = None

    @property
    def has_copy(self) -> bool:
        return bool(self.title or self.body or self.description)


class CachedAssets(BaseModel):
    """Durable copies written to Supabase Storage."""
    cached_image_url: Optional[str] = None
    cached_thumbnail_url: Optional[str] = None
    file_size: Optional[int] = None
    cache_expires_at: Optional[datetime] = None


class CachedMedia(BaseModel):
    """One on-demand copy written to Supabase Storage."""
    media_type: MediaType
    cached_url: str = Field(..., description="Signed URL of the stored copy")
    path: str = Field(..., description="Object path inside the cache bucket")
    file_size: int = Field(..., ge=0, description="Stored size in bytes")
    cache_expires_at: Optional[datetime] = None


# ============================================================================
# Persisted Creative
# ============================================================================

class CreativeRecord(BaseModel):
    """
    One creative per (workspace, ad), stored in meta_ad_creatives.

    Written only through the pipeline's upsert keyed by
    (workspace_id, ad_id); never hard-deleted by the pipeline.
    """
    # Identity
    workspace_id: str = Field(..., description="Owning workspace")
    ad_id: str = Field(..., description="Meta ad ID")
    meta_ad_account_id: str = Field(..., description="Meta ad account ID (act_...)")
    meta_creative_id: Optional[str] = None

    # Classification
    creative_type: CreativeType = CreativeType.UNKNOWN

    # Image
    image_url: Optional[str] = None
    image_url_hd: Optional[str] = None
    thumbnail_url: Optional[str] = None
    thumbnail_quality: ImageQuality = ImageQuality.UNKNOWN
    image_width: Optional[int] = None
    image_height: Optional[int] = None

    # Video
    video_id: Optional[str] = None
    video_url: Optional[str] = None
    video_duration_seconds: Optional[float] = None
    video_format: Optional[str] = None

    preview_url: Optional[str] = None

    # Copy
    title: Optional[str] = None
    body: Optional[str] = None
    description: Optional[str] = None
    call_to_action: Optional[str] = None
    link_url: Optional[str] = None

    # Durable cache
    cached_image_url: Optional[str] = None
    cached_thumbnail_url: Optional[str] = None
    cache_expires_at: Optional[datetime] = None
    file_size: Optional[int] = None

    # Lifecycle
    is_complete: bool = False
    fetch_status: FetchStatus = FetchStatus.PENDING
    fetch_attempts: int = Field(default=0, ge=0)
    last_validated_at: Optional[datetime] = None
    error_message: Optional[str] = None
    fetched_at: Optional[datetime] = None

    extra_data: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}

    @field_validator('creative_type', mode='before')
    @classmethod
    def validate_creative_type(cls, v: Any) -> Any:
        """Stored rows may carry NULL or a type this version doesn't know"""
        if isinstance(v, CreativeType) or v in {t.value for t in CreativeType}:
            return v
        return CreativeType.UNKNOWN

    @field_validator('thumbnail_quality', mode='before')
    @classmethod
    def validate_thumbnail_quality(cls, v: Any) -> Any:
        if isinstance(v, ImageQuality) or v in {q.value for q in ImageQuality}:
            return v
        return ImageQuality.UNKNOWN

    @field_validator('fetch_status', mode='before')
    @classmethod
    def validate_fetch_status(cls, v: Any) -> Any:
        if isinstance(v, FetchStatus) or v in {s.value for s in FetchStatus}:
            return v
        return FetchStatus.PENDING

    @field_validator('fetch_attempts', 'is_complete', 'extra_data', mode='before')
    @classmethod
    def validate_not_null(cls, v: Any, info) -> Any:
        """NULL columns fall back to the field default"""
        if v is None:
            return {"fetch_attempts": 0, "is_complete": False, "extra_data": {}}[info.field_name]
        return v

    @property
    def has_image(self) -> bool:
        return bool(self.image_url or self.thumbnail_url)

    @property
    def has_asset(self) -> bool:
        return self.has_image or bool(self.video_url)

    @property
    def has_copy(self) -> bool:
        return bool(self.title or self.body or self.description)

    @property
    def has_usable_data(self) -> bool:
        return self.has_asset or self.has_copy

    def to_row(self) -> Dict[str, Any]:
        """JSON-safe dict for Supabase writes."""
        return self.model_dump(mode="json")


# ============================================================================
# Pipeline Results
# ============================================================================

class BatchFetchResult(BaseModel):
    """
    Result of a batch fetch.

    Every requested ad id is a key of `records` or `errors`; a provisional
    record whose upgrade failed appears in both.
    """
    records: Dict[str, CreativeRecord] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict)
    cached_count: int = 0
    fetched_count: int = 0


class CreativeFetchResult(BaseModel):
    """Result of a single-ad fetch."""
    creative: CreativeRecord
    cached: bool = False
