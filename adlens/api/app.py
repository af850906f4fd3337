"""
AdLens FastAPI Application.

REST API for the creative pipeline, called by the dashboard to get
display-ready creatives for Meta ads.

Features:
- Single, batch and enrich creative endpoints
- On-demand media caching (video sources)
- Supabase bearer-token authentication
- Rate limiting
- Health check endpoint
- Automatic OpenAPI documentation
"""

# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
from datetime import datetime

from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from typing import Optional

from .. import __version__
from ..core.config import Config
from ..core.database import get_supabase_client
from ..core.observability import setup_logfire
from ..services.creative_fetch_service import CreativeFetchService, CreativeFetchError, MediaCacheError
from ..services.creative_repository import WorkspaceNotFoundError, MetaConnectionError
from .models import (
    CreativeFetchRequest,
    CreativeBatchRequest,
    CreativeEnrichRequest,
    MediaCacheRequest,
    CreativeResponse,
    CreativeBatchResponse,
    MediaCacheResponse,
    HealthResponse,
    ErrorResponse,
)

# ============================================================================
# Logging Configuration
# ============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ============================================================================
# FastAPI Application Setup
# ============================================================================

app = FastAPI(
    title="AdLens API",
    description="Creative asset resolution and caching for Meta ads",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# ============================================================================
# CORS Configuration
# ============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# Rate Limiting
# ============================================================================

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

RATE_LIMIT = f"{Config.RATE_LIMIT_PER_MINUTE}/minute"

# ============================================================================
# Dependencies
# ============================================================================

BEARER = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(BEARER)
) -> str:
    """
    Resolve the bearer token to a Supabase user ID.

    Raises:
        HTTPException: 401 if the token is missing or not accepted by Supabase
    """
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    try:
        supabase = get_supabase_client()
        response = await asyncio.to_thread(lambda: supabase.auth.get_user(credentials.credentials))
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        response = None

    user = getattr(response, "user", None)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token"
        )
    return user.id


def get_creative_service() -> CreativeFetchService:
    """One service per request; it holds no state between requests."""
    return CreativeFetchService(get_supabase_client())


# ============================================================================
# Health Check Endpoint
# ============================================================================

@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check endpoint"
)
async def health_check():
    """Check API health and configuration of dependent services."""
    services = {}

    try:
        Config.validate()
        services["database"] = "configured"
    except ValueError as e:
        logger.error(f"Database health check failed: {e}")
        services["database"] = "error"

    services["storage_bucket"] = Config.CREATIVE_CACHE_BUCKET

    overall_status = "healthy" if all(
        s != "error" for s in services.values()
    ) else "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        timestamp=datetime.now(),
        services=services
    )


# ============================================================================
# Creative Endpoints
# ============================================================================

ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Unauthorized - Missing or invalid token"},
    404: {"model": ErrorResponse, "description": "Workspace or Meta connection not found"},
    429: {"model": ErrorResponse, "description": "Too many requests"},
    500: {"model": ErrorResponse, "description": "Internal server error"}
}


@app.post(
    "/api/v1/creatives/fetch",
    response_model=CreativeResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse, "description": "Meta fetch failed"}},
    tags=["Creatives"],
    summary="Fetch one ad creative"
)
@limiter.limit(RATE_LIMIT)
async def fetch_creative(
    request: Request,
    fetch_request: CreativeFetchRequest,
    user_id: str = Depends(get_current_user_id),
    service: CreativeFetchService = Depends(get_creative_service),
):
    """
    Return the creative for one ad, from the store when it is usable.

    With `force_refresh`, Meta is always called; the stored creative is
    still returned if the refresh fails.
    """
    result = await service.fetch_creative(
        user_id,
        fetch_request.ad_id,
        fetch_request.meta_ad_account_id,
        force_refresh=fetch_request.force_refresh,
    )
    return CreativeResponse(success=True, creative=result.creative, cached=result.cached)


@app.post(
    "/api/v1/creatives/batch",
    response_model=CreativeBatchResponse,
    responses=ERROR_RESPONSES,
    tags=["Creatives"],
    summary="Fetch creatives for many ads"
)
@limiter.limit(RATE_LIMIT)
async def fetch_creatives_batch(
    request: Request,
    batch_request: CreativeBatchRequest,
    user_id: str = Depends(get_current_user_id),
    service: CreativeFetchService = Depends(get_creative_service),
):
    """
    Return creatives for many ads.

    Usable stored creatives are served directly; the rest are fetched from
    Meta in batches of 50. Per-ad failures are reported in `errors`.
    """
    result = await service.fetch_creatives_batch(
        user_id,
        batch_request.ad_ids,
        batch_request.meta_ad_account_id,
    )
    return CreativeBatchResponse(
        success=True,
        creatives=result.records,
        errors=result.errors,
        cached_count=result.cached_count,
        fetched_count=result.fetched_count,
    )


@app.post(
    "/api/v1/creatives/enrich",
    response_model=CreativeResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse, "description": "Meta fetch failed"}},
    tags=["Creatives"],
    summary="Re-fetch and enrich one ad creative"
)
@limiter.limit(RATE_LIMIT)
async def enrich_creative(
    request: Request,
    enrich_request: CreativeEnrichRequest,
    user_id: str = Depends(get_current_user_id),
    service: CreativeFetchService = Depends(get_creative_service),
):
    """Always call Meta for this ad and store the result, stamped as enriched."""
    result = await service.enrich_creative(
        user_id,
        enrich_request.ad_id,
        enrich_request.meta_ad_account_id,
    )
    return CreativeResponse(success=True, creative=result.creative, cached=result.cached)


@app.post(
    "/api/v1/creatives/cache-media",
    response_model=MediaCacheResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse, "description": "Media could not be cached"}},
    tags=["Creatives"],
    summary="Store a durable copy of one ad media file"
)
@limiter.limit(RATE_LIMIT)
async def cache_media(
    request: Request,
    media_request: MediaCacheRequest,
    user_id: str = Depends(get_current_user_id),
    service: CreativeFetchService = Depends(get_creative_service),
):
    """
    Copy an image, thumbnail or video into the media cache bucket.

    Meta video sources expire; the returned signed URL stays valid for the
    cache lifetime.
    """
    cached = await service.cache_media(
        user_id,
        media_request.ad_id,
        media_request.media_url,
        media_request.media_type,
    )
    return MediaCacheResponse(success=True, media=cached)


# ============================================================================
# Error Handlers
# ============================================================================

def _error(status_code: int, error: str, detail: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            detail=detail,
            timestamp=datetime.now()
        ).model_dump(mode="json")
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    return _error(exc.status_code, str(exc.detail), str(exc))


@app.exception_handler(WorkspaceNotFoundError)
async def workspace_not_found_handler(request: Request, exc: WorkspaceNotFoundError):
    return _error(status.HTTP_404_NOT_FOUND, "Workspace not found", str(exc))


@app.exception_handler(MetaConnectionError)
async def meta_connection_handler(request: Request, exc: MetaConnectionError):
    return _error(status.HTTP_404_NOT_FOUND, "Meta connection not found", str(exc))


@app.exception_handler(CreativeFetchError)
async def creative_fetch_handler(request: Request, exc: CreativeFetchError):
    logger.warning(f"Creative fetch failed: {exc}")
    return _error(status.HTTP_502_BAD_GATEWAY, "Failed to fetch creative", exc.reason)


@app.exception_handler(MediaCacheError)
async def media_cache_handler(request: Request, exc: MediaCacheError):
    logger.warning(f"Media cache failed: {exc}")
    return _error(status.HTTP_502_BAD_GATEWAY, "Failed to cache media", str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error(500, "Internal server error", str(exc))


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Configure tracing and log startup information."""
    setup_logfire()
    logger.info("="*60)
    logger.info("AdLens API Starting...")
    logger.info(f"API Version: {__version__}")
    logger.info(f"Docs available at: /docs")
    logger.info(f"Graph API: {Config.graph_api_url()}")
    logger.info(f"Rate limit: {RATE_LIMIT}")
    logger.info("="*60)


@app.on_event("shutdown")
async def shutdown_event():
    """Log shutdown information."""
    logger.info("AdLens API Shutting down...")
