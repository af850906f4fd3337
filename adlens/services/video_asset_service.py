"""
VideoAssetFetcher - playable source, duration, format and poster for a video.
"""

import logging
import posixpath
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import httpx

from .creative_quality import classify_quality
from .meta_graph_client import MetaGraphClient, MetaGraphError
from .models import ImageQuality, VideoAsset

logger = logging.getLogger(__name__)

DEFAULT_VIDEO_FORMAT = "mp4"
KNOWN_VIDEO_FORMATS = {"mp4", "mov", "webm", "m4v", "avi", "mkv"}


def detect_video_format(source_url: Optional[str]) -> str:
    """Container format from the source URL's file extension, mp4 when undetermined."""
    if not source_url:
        return DEFAULT_VIDEO_FORMAT
    try:
        path = urlsplit(source_url).path
    except ValueError:
        return DEFAULT_VIDEO_FORMAT
    ext = posixpath.splitext(path)[1].lstrip(".").lower()
    return ext if ext in KNOWN_VIDEO_FORMATS else DEFAULT_VIDEO_FORMAT


def _parse_duration(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class VideoAssetFetcher:
    """Fetches video metadata from the Graph API in a single call."""

    def __init__(self, graph: MetaGraphClient):
        self.graph = graph

    async def fetch(self, video_id: str) -> VideoAsset:
        """
        Resolve the playable source and best thumbnail of a video.

        Never raises: upstream and transport errors are logged and yield an
        all-null VideoAsset.

        Args:
            video_id: Meta video ID

        Returns:
            VideoAsset with poster image fields and video_source_url,
            duration_seconds, format
        """
        try:
            data = await self.graph.get_video(video_id)
        except MetaGraphError as e:
            logger.error(f"Video lookup error for {video_id}: {e}")
            return VideoAsset()
        except httpx.HTTPError as e:
            logger.error(f"Transport error fetching video {video_id}: {e}")
            return VideoAsset()

        return self.build_asset(video_id, data)

    def build_asset(self, video_id: str, data: Dict[str, Any]) -> VideoAsset:
        """Turn a video node payload into a VideoAsset."""
        source = data.get("source")
        picture = data.get("picture")
        video_fields = {
            "video_id": video_id,
            "video_source_url": source,
            "duration_seconds": _parse_duration(data.get("length")),
            "format": detect_video_format(source) if source else None,
        }

        thumbnails: List[Dict[str, Any]] = [
            t for t in (data.get("thumbnails") or {}).get("data", [])
            if t.get("uri")
        ]
        thumbnails.sort(key=lambda t: (t.get("width") or 0) * (t.get("height") or 0), reverse=True)

        best = thumbnails[0] if thumbnails else None
        hd = next(
            (t for t in thumbnails
             if classify_quality(t.get("width"), t.get("height")) == ImageQuality.HD),
            None,
        )

        if hd:
            return VideoAsset(
                url=hd["uri"],
                hd_url=hd["uri"],
                original_thumbnail=picture,
                width=hd.get("width"),
                height=hd.get("height"),
                quality=ImageQuality.HD,
                provenance_tag="video_thumbnail_hd",
                **video_fields,
            )

        if best:
            return VideoAsset(
                url=best["uri"],
                original_thumbnail=picture,
                width=best.get("width"),
                height=best.get("height"),
                quality=classify_quality(best.get("width"), best.get("height")),
                provenance_tag="video_thumbnail_best",
                **video_fields,
            )

        if picture:
            return VideoAsset(
                url=picture,
                original_thumbnail=picture,
                provenance_tag="video_picture",
                **video_fields,
            )

        return VideoAsset(**video_fields)
