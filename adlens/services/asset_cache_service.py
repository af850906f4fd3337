"""
AssetCacheStore - durable copies of creative images in Supabase Storage.

Meta CDN URLs expire; a copy in the ad-media-cache bucket with a
long-lived signed URL keeps dashboards rendering. Files per ad:
- workspaces/{workspace_id}/creatives/{ad_id}/image.{ext}  (main image)
- workspaces/{workspace_id}/creatives/{ad_id}/thumb.{ext}  (fast-load thumbnail)
- workspaces/{workspace_id}/creatives/{ad_id}/video.{ext}  (on demand only)

Caching is best effort: every failure is logged and yields a null URL.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import httpx
from supabase import Client
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.config import Config
from .creative_quality import is_low_resolution_url
from .models import CachedAssets, CachedMedia, ImageQuality, ImageResolution, MediaType
from .video_asset_service import detect_video_format

logger = logging.getLogger(__name__)

# Meta's CDN rejects requests that don't look like a browser
DOWNLOAD_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

DEFAULT_CONTENT_TYPE = "image/jpeg"
DEFAULT_VIDEO_CONTENT_TYPE = "video/mp4"

MEDIA_FILE_STEMS = {
    MediaType.IMAGE: "image",
    MediaType.THUMBNAIL: "thumb",
    MediaType.VIDEO: "video",
}


class AssetCacheStore:
    """Downloads resolved media and stores it under per-ad paths."""

    def __init__(
        self,
        supabase: Client,
        bucket: Optional[str] = None,
        max_bytes: Optional[int] = None,
        expiry_days: Optional[int] = None,
        timeout: Optional[float] = None,
        video_max_bytes: Optional[int] = None,
    ):
        """
        Initialize AssetCacheStore.

        Args:
            supabase: Supabase client used for storage writes
            bucket: Storage bucket (defaults to Config.CREATIVE_CACHE_BUCKET)
            max_bytes: Largest payload accepted (defaults to 10 MB)
            expiry_days: Signed URL lifetime in days (defaults to 30)
            timeout: Download timeout in seconds
            video_max_bytes: Largest video accepted by cache_media (defaults to 100 MB)
        """
        self.supabase = supabase
        self.bucket = bucket or Config.CREATIVE_CACHE_BUCKET
        self.max_bytes = max_bytes or Config.CREATIVE_CACHE_MAX_BYTES
        self.expiry_days = expiry_days or Config.CREATIVE_CACHE_EXPIRY_DAYS
        self.timeout = timeout or Config.ASSET_DOWNLOAD_TIMEOUT
        self.video_max_bytes = video_max_bytes or Config.VIDEO_CACHE_MAX_BYTES

    async def cache(self, resolution: ImageResolution, workspace_id: str, ad_id: str) -> CachedAssets:
        """
        Store durable copies of a creative's main image and thumbnail.

        The main image is left uncached when it is low quality so that the
        record stays eligible for an upgrade on a later fetch.

        Args:
            resolution: Resolved image for the creative
            workspace_id: Owning workspace
            ad_id: Meta ad ID

        Returns:
            CachedAssets; each URL is None when that file was not cached
        """
        base_path = f"workspaces/{workspace_id}/creatives/{ad_id}"
        result = CachedAssets()

        main_url = resolution.hd_url or resolution.url
        if main_url and resolution.quality != ImageQuality.LOW and not is_low_resolution_url(main_url):
            stored = await self._cache_file(main_url, f"{base_path}/image")
            if stored:
                result.cached_image_url, result.file_size, _ = stored
                logger.info(f"Cached main image for ad {ad_id}")

        if resolution.original_thumbnail:
            stored = await self._cache_file(resolution.original_thumbnail, f"{base_path}/thumb")
            if stored:
                result.cached_thumbnail_url = stored[0]
                logger.info(f"Cached thumbnail for ad {ad_id}")

        if result.cached_image_url or result.cached_thumbnail_url:
            result.cache_expires_at = datetime.now(timezone.utc) + timedelta(days=self.expiry_days)

        return result

    async def cache_media(
        self,
        url: str,
        media_type: MediaType,
        workspace_id: str,
        ad_id: str,
    ) -> Optional[CachedMedia]:
        """
        Store a durable copy of one media file on request.

        Used for playable video sources, which Meta serves from expiring
        URLs and the batch pipeline does not download.

        Args:
            url: Media URL to copy
            media_type: image, video or thumbnail; picks the file name and size cap
            workspace_id: Owning workspace
            ad_id: Meta ad ID

        Returns:
            CachedMedia, or None when the file could not be cached
        """
        media_type = MediaType(media_type)
        path_stem = f"workspaces/{workspace_id}/creatives/{ad_id}/{MEDIA_FILE_STEMS[media_type]}"
        max_bytes = self.video_max_bytes if media_type == MediaType.VIDEO else self.max_bytes
        default_type = DEFAULT_VIDEO_CONTENT_TYPE if media_type == MediaType.VIDEO else DEFAULT_CONTENT_TYPE

        stored = await self._cache_file(url, path_stem, max_bytes, default_type)
        if not stored:
            return None

        signed_url, size, storage_path = stored
        logger.info(f"Cached {media_type.value} for ad {ad_id} ({size} bytes)")
        return CachedMedia(
            media_type=media_type,
            cached_url=signed_url,
            path=storage_path,
            file_size=size,
            cache_expires_at=datetime.now(timezone.utc) + timedelta(days=self.expiry_days),
        )

    async def _cache_file(
        self,
        url: str,
        path_stem: str,
        max_bytes: Optional[int] = None,
        default_content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> Optional[Tuple[str, int, str]]:
        """Download, upload and sign one file. Returns (signed_url, size, path) or None."""
        try:
            downloaded = await self._download(url, max_bytes or self.max_bytes)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.warning(f"Download failed for {path_stem}: {e}")
            return None

        if downloaded is None:
            return None

        content, content_type = downloaded
        content_type = content_type or default_content_type
        storage_path = f"{path_stem}.{self._get_extension(content_type, url)}"

        try:
            await asyncio.to_thread(
                lambda: self.supabase.storage.from_(self.bucket).upload(
                    storage_path,
                    content,
                    {"content-type": content_type, "upsert": "true"}
                )
            )
            signed = await asyncio.to_thread(
                lambda: self.supabase.storage.from_(self.bucket).create_signed_url(
                    storage_path, self.expiry_days * 24 * 60 * 60
                )
            )
        except Exception as e:
            logger.error(f"Storage write failed for {storage_path}: {e}")
            return None

        signed_url = (signed or {}).get("signedURL") or (signed or {}).get("signedUrl")
        if not signed_url:
            logger.error(f"Signed URL generation failed for {storage_path}")
            return None

        return signed_url, len(content), storage_path

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        reraise=True,
    )
    async def _download(self, url: str, max_bytes: int) -> Optional[Tuple[bytes, Optional[str]]]:
        """
        Fetch an asset, enforcing the size cap on the declared and actual length.

        Returns:
            (content, content_type or None), or None for non-2xx or oversized payloads

        Raises:
            httpx.TransportError: After three failed transport attempts
            httpx.InvalidURL: The URL cannot be requested
        """
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers=DOWNLOAD_HEADERS
        ) as client:
            async with client.stream("GET", url) as response:
                if response.status_code >= 400:
                    logger.warning(f"HTTP {response.status_code} downloading: {url[:80]}...")
                    return None

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > max_bytes:
                    logger.info(f"Asset too large for cache ({declared} bytes): {url[:80]}...")
                    return None

                content = bytearray()
                async for chunk in response.aiter_bytes():
                    content.extend(chunk)
                    if len(content) > max_bytes:
                        logger.info(f"Asset too large for cache (over {max_bytes} bytes): {url[:80]}...")
                        return None

                content_type = response.headers.get("content-type", "").split(";")[0].strip()

        return bytes(content), content_type or None

    def _get_extension(self, mime_type: str, url: str) -> str:
        """File extension from MIME type, falling back to the URL."""
        extensions = {
            'image/jpeg': 'jpg',
            'image/png': 'png',
            'image/gif': 'gif',
            'image/webp': 'webp',
            'video/mp4': 'mp4',
            'video/webm': 'webm',
            'video/quicktime': 'mov',
        }
        if mime_type in extensions:
            return extensions[mime_type]
        if mime_type.startswith('video/'):
            return detect_video_format(url)
        return 'png' if '.png' in url.lower() else 'jpg'
