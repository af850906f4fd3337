"""
ImageResolutionResolver - find the best still image for a Meta ad creative.

Meta exposes a creative's image through different, deeply nested paths
depending on the ad type (single image, video poster, carousel, dynamic /
asset-feed, boosted post). This module turns a creative (plus its
originating post, when fetched) into an ordered list of candidate sources
and walks it, stopping at the first candidate that yields a URL.

Candidate order, best first:
 1. post full_picture                     (always HD)
 2. post attachment media image           (HD)
 3. post picture                          (unless low-res shaped)
 4. asset_feed_spec.images hash / url     (hash via adimages lookup)
 5. creative.image_hash                   (adimages lookup)
 6. link/video/photo data image_hash      (adimages lookup)
 7. link/video/photo data direct pictures (unless low-res shaped)
 8. first carousel / template child       (hash, then picture)
 9. asset_feed_spec video thumbnail       (or video thumbnail fetch)
10. creative video id                     (video thumbnail fetch)
11. creative.image_url                    (unless low-res shaped)
12. raw thumbnail with tile marker upgrade (recorded as low quality)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import httpx

from .creative_quality import (
    classify_quality,
    is_low_resolution_url,
    upgrade_thumbnail_url,
)
from .meta_graph_client import MetaGraphClient, MetaGraphError
from .models import ImageQuality, ImageResolution, VideoAsset
from .video_asset_service import VideoAssetFetcher

logger = logging.getLogger(__name__)


# ============================================================================
# Invocation-scoped memoization
# ============================================================================

@dataclass
class ResolutionContext:
    """
    Lookups already made during one pipeline invocation.

    Created per invocation and discarded with it; it is not a cache of
    record. Misses are remembered too so a bad hash is looked up once.
    """
    ad_account_id: str
    images_by_hash: Dict[str, Optional[Dict[str, Any]]] = field(default_factory=dict)
    posts_by_id: Dict[str, Optional[Dict[str, Any]]] = field(default_factory=dict)


# ============================================================================
# Candidate sources
# ============================================================================

@dataclass(frozen=True)
class PostImageCandidate:
    """An image taken from the originating post, trusted as high quality."""
    url: str
    tag: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class AssetHashCandidate:
    """An image content hash to resolve through the adimages lookup."""
    image_hash: str
    tag: str


@dataclass(frozen=True)
class LinkPictureCandidate:
    """A direct picture URL, accepted only if it is not a minimal tile."""
    url: str
    tag: str


@dataclass(frozen=True)
class CarouselChildCandidate:
    """First child of a carousel or template: its hash, then its picture."""
    tag: str
    image_hash: Optional[str] = None
    picture: Optional[str] = None


@dataclass(frozen=True)
class VideoThumbnailCandidate:
    """A video's thumbnail: the given URL if usable, else a video lookup."""
    tag: str
    video_id: Optional[str] = None
    thumbnail_url: Optional[str] = None


@dataclass(frozen=True)
class RawThumbnailUpgradeCandidate:
    """Last resort: the creative's own small image with its tile marker upgraded."""
    url: str
    tag: str


Candidate = Union[
    PostImageCandidate,
    AssetHashCandidate,
    LinkPictureCandidate,
    CarouselChildCandidate,
    VideoThumbnailCandidate,
    RawThumbnailUpgradeCandidate,
]


def _story_spec_part(creative: Dict[str, Any], key: str) -> Dict[str, Any]:
    return (creative.get("object_story_spec") or {}).get(key) or {}


def build_candidates(creative: Dict[str, Any], post: Optional[Dict[str, Any]] = None) -> List[Candidate]:
    """
    Ordered candidate sources for a creative. Pure: no network calls.

    Args:
        creative: Creative node as returned by the Graph API
        post: Originating post node, if it was fetched

    Returns:
        Candidates in priority order
    """
    candidates: List[Candidate] = []
    post = post or {}

    link_data = _story_spec_part(creative, "link_data")
    video_data = _story_spec_part(creative, "video_data")
    photo_data = _story_spec_part(creative, "photo_data")
    template_data = _story_spec_part(creative, "template_data")
    asset_feed = creative.get("asset_feed_spec") or {}

    # 1-3. Originating post
    if post.get("full_picture"):
        candidates.append(PostImageCandidate(post["full_picture"], "post_full_picture"))

    attachments = (post.get("attachments") or {}).get("data") or []
    if attachments:
        image = ((attachments[0].get("media") or {}).get("image")) or {}
        if image.get("src"):
            candidates.append(PostImageCandidate(
                image["src"], "post_attachment_media", image.get("width"), image.get("height")
            ))

    if post.get("picture"):
        candidates.append(LinkPictureCandidate(post["picture"], "post_picture"))

    # 4. Asset feed images (dynamic creatives)
    for image in asset_feed.get("images") or []:
        if image.get("hash"):
            candidates.append(AssetHashCandidate(image["hash"], "asset_feed_image_hash"))
        if image.get("url"):
            candidates.append(LinkPictureCandidate(image["url"], "asset_feed_image_url"))

    # 5. Hash on the creative itself
    if creative.get("image_hash"):
        candidates.append(AssetHashCandidate(creative["image_hash"], "creative_image_hash"))

    # 6. Hashes on the story spec sub-objects
    for part, tag in ((link_data, "link_data_image_hash"),
                      (video_data, "video_data_image_hash"),
                      (photo_data, "photo_data_image_hash")):
        if part.get("image_hash"):
            candidates.append(AssetHashCandidate(part["image_hash"], tag))

    # 7. Direct pictures on the story spec sub-objects
    for url, tag in ((link_data.get("picture"), "link_data_picture"),
                     (video_data.get("image_url"), "video_data_image_url"),
                     (photo_data.get("url"), "photo_data_url")):
        if url:
            candidates.append(LinkPictureCandidate(url, tag))

    # 8. Carousel / template first child
    for children, tag in ((link_data.get("child_attachments"), "carousel_child"),
                          (template_data.get("child_attachments"), "template_child")):
        if children:
            first = children[0]
            if first.get("image_hash") or first.get("picture"):
                candidates.append(CarouselChildCandidate(tag, first.get("image_hash"), first.get("picture")))

    # 9. Asset feed video
    feed_videos = asset_feed.get("videos") or []
    if feed_videos:
        first_video = feed_videos[0]
        if first_video.get("thumbnail_url") or first_video.get("video_id"):
            candidates.append(VideoThumbnailCandidate(
                "asset_feed_video_thumb", first_video.get("video_id"), first_video.get("thumbnail_url")
            ))

    # 10. Video referenced by the creative
    video_id = creative.get("video_id") or video_data.get("video_id")
    if video_id:
        candidates.append(VideoThumbnailCandidate("video_thumbnail", video_id))

    # 11-12. The creative's own image fields
    if creative.get("image_url"):
        candidates.append(LinkPictureCandidate(creative["image_url"], "creative_image_url"))
        candidates.append(RawThumbnailUpgradeCandidate(creative["image_url"], "creative_image_url_upgraded"))
    if creative.get("thumbnail_url"):
        candidates.append(RawThumbnailUpgradeCandidate(creative["thumbnail_url"], "creative_thumbnail_upgraded"))

    return candidates


# ============================================================================
# Resolver
# ============================================================================

class ImageResolutionResolver:
    """
    Walks a creative's candidates and returns the first usable image.

    Network lookups (adimages, posts, videos) are memoized in the
    ResolutionContext shared across the ads of one invocation.
    """

    def __init__(
        self,
        graph: MetaGraphClient,
        context: ResolutionContext,
        video_fetcher: Optional[VideoAssetFetcher] = None,
    ):
        self.graph = graph
        self.context = context
        self.video_fetcher = video_fetcher or VideoAssetFetcher(graph)

    async def fetch_post(self, post_id: str) -> Optional[Dict[str, Any]]:
        """Fetch the originating post of a creative, once per invocation."""
        if post_id in self.context.posts_by_id:
            return self.context.posts_by_id[post_id]

        post: Optional[Dict[str, Any]] = None
        try:
            post = await self.graph.get_post(post_id)
        except MetaGraphError as e:
            logger.warning(f"Post lookup failed for {post_id}: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"Transport error fetching post {post_id}: {e}")

        self.context.posts_by_id[post_id] = post
        return post

    async def resolve_image_hash(self, image_hash: str) -> Optional[Dict[str, Any]]:
        """
        Resolve a content hash to its adimages entry (non-expiring full-res URL).

        Returns:
            Dict with "url" and, when known, "width"/"height"; None if unresolvable
        """
        if image_hash in self.context.images_by_hash:
            return self.context.images_by_hash[image_hash]

        resolved: Optional[Dict[str, Any]] = None
        try:
            entry = await self.graph.get_image_by_hash(self.context.ad_account_id, image_hash)
            if entry:
                # url_128 / url_256 are previews, not the full-resolution asset
                url = entry.get("url") or entry.get("permalink_url")
                if url:
                    resolved = {"url": url, "width": entry.get("width"), "height": entry.get("height")}
        except MetaGraphError as e:
            logger.warning(f"Image hash lookup failed for {image_hash}: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"Transport error resolving image hash {image_hash}: {e}")

        self.context.images_by_hash[image_hash] = resolved
        return resolved

    async def resolve(
        self,
        creative: Dict[str, Any],
        post: Optional[Dict[str, Any]] = None,
        videos: Optional[Dict[str, VideoAsset]] = None,
    ) -> ImageResolution:
        """
        Best image for a creative.

        Args:
            creative: Creative node from the Graph API
            post: Originating post node, if fetched
            videos: Video assets already fetched for this ad, by video id;
                videos fetched here are added to it

        Returns:
            ImageResolution; all-null with provenance_tag "none" when no
            candidate produced a URL
        """
        original_thumbnail = creative.get("thumbnail_url")
        videos = videos if videos is not None else {}

        for candidate in build_candidates(creative, post):
            result = await self._try_candidate(candidate, original_thumbnail, videos)
            if result is not None and result.url:
                logger.debug(f"Image source: {result.provenance_tag}")
                return result

        return ImageResolution.empty()

    async def _try_candidate(
        self,
        candidate: Candidate,
        original_thumbnail: Optional[str],
        videos: Dict[str, VideoAsset],
    ) -> Optional[ImageResolution]:
        if isinstance(candidate, PostImageCandidate):
            return self._hit(candidate.url, candidate.tag, original_thumbnail,
                             hd=True, width=candidate.width, height=candidate.height)

        if isinstance(candidate, AssetHashCandidate):
            return await self._from_hash(candidate.image_hash, candidate.tag, original_thumbnail)

        if isinstance(candidate, LinkPictureCandidate):
            if is_low_resolution_url(candidate.url):
                return None
            return self._hit(candidate.url, candidate.tag, original_thumbnail)

        if isinstance(candidate, CarouselChildCandidate):
            if candidate.image_hash:
                result = await self._from_hash(candidate.image_hash, f"{candidate.tag}_hash", original_thumbnail)
                if result:
                    return result
            if candidate.picture and not is_low_resolution_url(candidate.picture):
                return self._hit(candidate.picture, f"{candidate.tag}_picture", original_thumbnail)
            return None

        if isinstance(candidate, VideoThumbnailCandidate):
            if candidate.thumbnail_url and not is_low_resolution_url(candidate.thumbnail_url):
                return self._hit(candidate.thumbnail_url, candidate.tag, original_thumbnail)
            if candidate.video_id:
                asset = await self._video(candidate.video_id, videos)
                if asset.url:
                    poster = asset.poster()
                    poster.original_thumbnail = original_thumbnail or asset.original_thumbnail
                    return poster
            return None

        if isinstance(candidate, RawThumbnailUpgradeCandidate):
            return ImageResolution(
                url=upgrade_thumbnail_url(candidate.url),
                original_thumbnail=original_thumbnail or candidate.url,
                quality=ImageQuality.LOW,
                provenance_tag=candidate.tag,
            )

        return None

    async def _from_hash(
        self, image_hash: str, tag: str, original_thumbnail: Optional[str]
    ) -> Optional[ImageResolution]:
        resolved = await self.resolve_image_hash(image_hash)
        if not resolved:
            return None
        return self._hit(resolved["url"], tag, original_thumbnail, hd=True,
                         width=resolved.get("width"), height=resolved.get("height"))

    async def _video(self, video_id: str, videos: Dict[str, VideoAsset]) -> VideoAsset:
        if video_id not in videos:
            videos[video_id] = await self.video_fetcher.fetch(video_id)
        return videos[video_id]

    @staticmethod
    def _hit(
        url: str,
        tag: str,
        original_thumbnail: Optional[str],
        hd: bool = False,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> ImageResolution:
        """
        Result for a direct hit.

        Known dimensions decide the grade; otherwise trusted sources are HD
        and anything else is low if tile-shaped, unknown if not.
        """
        if width and height:
            quality = classify_quality(width, height)
        elif hd:
            quality = ImageQuality.HD
        elif is_low_resolution_url(url):
            quality = ImageQuality.LOW
        else:
            quality = ImageQuality.UNKNOWN

        return ImageResolution(
            url=url,
            hd_url=url if quality == ImageQuality.HD else None,
            original_thumbnail=original_thumbnail,
            width=width,
            height=height,
            quality=quality,
            provenance_tag=tag,
        )
