"""
Quality grading helpers for Meta CDN assets.

Pure functions, no I/O:
- classify_quality: grade from pixel dimensions
- is_low_resolution_url: spot minimal-tile CDN paths (p64x64, p128x128)
- upgrade_thumbnail_url: best-effort rewrite of a tile marker to p720x720
"""

import re
from typing import Optional
from urllib.parse import urlsplit

from .models import ImageQuality

LOW_RESOLUTION_MARKERS = ("p64x64", "p128x128")
UPGRADED_TILE_MARKER = "p720x720"

_TILE_MARKER_RE = re.compile("|".join(LOW_RESOLUTION_MARKERS))


def classify_quality(width: Optional[int], height: Optional[int]) -> ImageQuality:
    """
    Grade an asset by its pixel dimensions.

    Both orientations count: 1280x720 and 720x1280 are both HD.

    Args:
        width: Pixel width, or None if unknown
        height: Pixel height, or None if unknown

    Returns:
        ImageQuality.HD, SD, LOW or UNKNOWN
    """
    w = width or 0
    h = height or 0

    if (w >= 1280 and h >= 720) or (w >= 720 and h >= 1280):
        return ImageQuality.HD
    if (w >= 640 and h >= 480) or (w >= 480 and h >= 640):
        return ImageQuality.SD
    if w > 0 and h > 0:
        return ImageQuality.LOW
    return ImageQuality.UNKNOWN


def is_low_resolution_url(url: Optional[str]) -> bool:
    """
    True when the URL path carries a minimal-tile marker.

    Only the path is inspected. Meta's `stp=` query parameter describes a
    CDN transform and routinely mentions p64x64 for images stored at full
    size, so the query string is not evidence either way.
    """
    if not url:
        return False
    try:
        path = urlsplit(url).path
    except ValueError:
        return False
    return any(f"/{marker}" in path for marker in LOW_RESOLUTION_MARKERS)


def upgrade_thumbnail_url(url: str) -> str:
    """
    Swap minimal-tile markers for p720x720.

    Heuristic only: the CDN may serve the same pixels under the new marker.
    """
    return _TILE_MARKER_RE.sub(UPGRADED_TILE_MARKER, url)

