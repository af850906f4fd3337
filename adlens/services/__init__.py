"""
Services layer for AdLens.

Provides the creative pipeline: Graph API access (MetaGraphClient),
image/video resolution, durable media caching, store access
(CreativeRepository) and the fetch entry points (CreativeFetchService).
"""

from .models import (
    CreativeType,
    ImageQuality,
    FetchStatus,
    ImageResolution,
    VideoAsset,
    CreativeTexts,
    MediaType,
    CachedAssets,
    CachedMedia,
    CreativeRecord,
    BatchFetchResult,
    CreativeFetchResult,
)

from .meta_graph_client import MetaGraphClient, MetaGraphError
from .creative_repository import CreativeRepository, WorkspaceNotFoundError, MetaConnectionError
from .creative_fetch_service import CreativeFetchService, CreativeFetchError, MediaCacheError, BatchOrchestrator

__all__ = [
    "CreativeType",
    "ImageQuality",
    "FetchStatus",
    "ImageResolution",
    "VideoAsset",
    "CreativeTexts",
    "MediaType",
    "CachedAssets",
    "CachedMedia",
    "CreativeRecord",
    "BatchFetchResult",
    "CreativeFetchResult",
    "MetaGraphClient",
    "MetaGraphError",
    "CreativeRepository",
    "WorkspaceNotFoundError",
    "MetaConnectionError",
    "CreativeFetchService",
    "CreativeFetchError",
    "MediaCacheError",
    "BatchOrchestrator",
]
