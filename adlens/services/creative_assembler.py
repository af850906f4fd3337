"""
CreativeRecordAssembler - turn one Graph API ad payload into a CreativeRecord.

Handles:
- Creative selection (inline creative, else first of the adcreatives edge)
- Creative type classification
- Copy extraction from the creative, with the originating post as fallback
- Image resolution (delegated to ImageResolutionResolver) and video metadata
- Durable image copies (delegated to AssetCacheStore)
- Completeness, fetch status and attempt counting
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..core.config import Config
from .creative_quality import is_low_resolution_url
from .asset_cache_service import AssetCacheStore
from .image_resolution_service import ImageResolutionResolver
from .models import (
    CreativeRecord,
    CreativeTexts,
    CreativeType,
    FetchStatus,
    ImageQuality,
    ImageResolution,
    VideoAsset,
)

logger = logging.getLogger(__name__)


def _first_text(items: Any, key: str = "text") -> Optional[str]:
    if items and isinstance(items, list) and isinstance(items[0], dict):
        return items[0].get(key)
    return None


def determine_creative_type(creative: Dict[str, Any]) -> CreativeType:
    """Classify how a creative presents itself."""
    story_spec = creative.get("object_story_spec") or {}
    video_data = story_spec.get("video_data") or {}
    link_data = story_spec.get("link_data") or {}
    asset_feed = creative.get("asset_feed_spec") or {}

    if creative.get("video_id") or video_data.get("video_id"):
        return CreativeType.VIDEO
    if len(link_data.get("child_attachments") or []) > 1:
        return CreativeType.CAROUSEL
    if asset_feed.get("images") or asset_feed.get("videos") or asset_feed.get("bodies"):
        return CreativeType.VIDEO if asset_feed.get("videos") else CreativeType.DYNAMIC
    if (creative.get("image_url") or creative.get("image_hash")
            or link_data.get("picture") or link_data.get("image_hash")):
        return CreativeType.IMAGE
    # Catalog / boosted-post / Instagram creatives carry no media of their own
    if creative.get("effective_object_story_id"):
        return CreativeType.DYNAMIC
    if "{{product." in (creative.get("name") or ""):
        return CreativeType.DYNAMIC
    if creative.get("effective_instagram_media_id"):
        return CreativeType.DYNAMIC
    if creative.get("thumbnail_url"):
        return CreativeType.IMAGE
    return CreativeType.UNKNOWN


def extract_texts(creative: Dict[str, Any], post: Optional[Dict[str, Any]] = None) -> CreativeTexts:
    """
    Pull title, body, description, CTA and link from a creative.

    Each field walks the creative's own locations first (creative root,
    link/video/photo data, asset feed) and only then the originating post.
    """
    story_spec = creative.get("object_story_spec") or {}
    link_data = story_spec.get("link_data") or {}
    video_data = story_spec.get("video_data") or {}
    photo_data = story_spec.get("photo_data") or {}
    asset_feed = creative.get("asset_feed_spec") or {}
    post = post or {}
    post_attachment = ((post.get("attachments") or {}).get("data") or [{}])[0]
    post_cta = post.get("call_to_action") or {}
    video_cta = video_data.get("call_to_action") or {}

    title = (creative.get("title") or link_data.get("name") or video_data.get("title")
             or _first_text(asset_feed.get("titles"))
             or post.get("name") or post_attachment.get("title"))

    body = (creative.get("body") or link_data.get("message") or video_data.get("message")
            or photo_data.get("caption") or _first_text(asset_feed.get("bodies"))
            or post.get("message") or post.get("story"))

    description = (link_data.get("description") or video_data.get("link_description")
                   or _first_text(asset_feed.get("descriptions"))
                   or post.get("description") or post.get("caption")
                   or post_attachment.get("description"))

    cta_types = asset_feed.get("call_to_action_types") or []
    call_to_action = (creative.get("call_to_action_type")
                      or (link_data.get("call_to_action") or {}).get("type")
                      or video_cta.get("type")
                      or (cta_types[0] if cta_types else None)
                      or post_cta.get("type"))

    link_url = (link_data.get("link") or (video_cta.get("value") or {}).get("link")
                or _first_text(asset_feed.get("link_urls"), "website_url")
                or (post_cta.get("value") or {}).get("link")
                or post_attachment.get("url"))

    return CreativeTexts(
        title=title,
        body=body,
        description=description,
        call_to_action=call_to_action,
        link_url=link_url,
    )


def compute_fetch_status(has_asset: bool, has_copy: bool, attempts: int, max_attempts: int) -> FetchStatus:
    """success needs both asset and copy; no data at all is failed only past the ceiling."""
    if has_asset and has_copy:
        return FetchStatus.SUCCESS
    if has_asset or has_copy:
        return FetchStatus.PARTIAL
    if attempts >= max_attempts:
        return FetchStatus.FAILED
    return FetchStatus.PENDING


class CreativeRecordAssembler:
    """Builds CreativeRecords from batch items, sharing one resolver per invocation."""

    def __init__(
        self,
        resolver: ImageResolutionResolver,
        cache_store: Optional[AssetCacheStore] = None,
        max_attempts: Optional[int] = None,
    ):
        """
        Initialize CreativeRecordAssembler.

        Args:
            resolver: Image resolver bound to this invocation's context
            cache_store: Durable image store; records are left uncached without one
            max_attempts: Retry ceiling (defaults to Config.CREATIVE_MAX_FETCH_ATTEMPTS)
        """
        self.resolver = resolver
        self.cache_store = cache_store
        self.max_attempts = max_attempts or Config.CREATIVE_MAX_FETCH_ATTEMPTS

    async def assemble(
        self,
        ad_data: Dict[str, Any],
        account_id: str,
        workspace_id: str,
        prior: Optional[CreativeRecord] = None,
    ) -> CreativeRecord:
        """
        Build the record for one ad.

        Args:
            ad_data: Ad node from the Graph API (already checked for errors)
            account_id: Meta ad account ID
            workspace_id: Owning workspace
            prior: Stored record for this ad, if any

        Returns:
            CreativeRecord with fetch_attempts = prior attempts + 1
        """
        ad_id = str(ad_data.get("id"))
        attempts = (prior.fetch_attempts if prior else 0) + 1
        now = datetime.now(timezone.utc)

        creative = ad_data.get("creative")
        if not creative:
            edge = (ad_data.get("adcreatives") or {}).get("data") or []
            creative = edge[0] if edge else None

        if not creative:
            logger.info(f"Ad {ad_id} has no creative in the response")
            return CreativeRecord(
                workspace_id=workspace_id,
                ad_id=ad_id,
                meta_ad_account_id=account_id,
                preview_url=ad_data.get("preview_shareable_link"),
                fetch_status=compute_fetch_status(False, False, attempts, self.max_attempts),
                fetch_attempts=attempts,
                last_validated_at=now,
                fetched_at=now,
                extra_data={"ad_name": ad_data.get("name"), "ad_status": ad_data.get("status")},
            )

        post = None
        if creative.get("effective_object_story_id"):
            post = await self.resolver.fetch_post(creative["effective_object_story_id"])

        creative_type = determine_creative_type(creative)
        video_data = (creative.get("object_story_spec") or {}).get("video_data") or {}
        feed_videos = (creative.get("asset_feed_spec") or {}).get("videos") or []
        video_id = (creative.get("video_id") or video_data.get("video_id")
                    or (feed_videos[0].get("video_id") if feed_videos else None))

        videos: Dict[str, VideoAsset] = {}
        video = VideoAsset()
        if creative_type == CreativeType.VIDEO and video_id:
            video = await self.resolver.video_fetcher.fetch(video_id)
            videos[video_id] = video

        resolution = await self.resolver.resolve(creative, post=post, videos=videos)
        if creative_type == CreativeType.VIDEO:
            resolution = self._prefer_video_poster(resolution, video)

        texts = extract_texts(creative, post)
        link_children = ((creative.get("object_story_spec") or {}).get("link_data") or {}).get("child_attachments") or []

        record = CreativeRecord(
            workspace_id=workspace_id,
            ad_id=ad_id,
            meta_ad_account_id=account_id,
            meta_creative_id=creative.get("id"),
            creative_type=creative_type,
            image_url=resolution.url,
            image_url_hd=resolution.hd_url,
            thumbnail_url=resolution.original_thumbnail or resolution.url,
            thumbnail_quality=resolution.quality,
            image_width=resolution.width,
            image_height=resolution.height,
            video_id=video_id,
            video_url=video.video_source_url,
            video_duration_seconds=video.duration_seconds,
            video_format=video.format,
            preview_url=ad_data.get("preview_shareable_link"),
            title=texts.title,
            body=texts.body,
            description=texts.description,
            call_to_action=texts.call_to_action,
            link_url=texts.link_url,
            fetch_attempts=attempts,
            last_validated_at=now,
            fetched_at=now,
            extra_data={
                "ad_name": ad_data.get("name"),
                "ad_status": ad_data.get("status"),
                "raw_creative": creative,
                "post_data": post,
                "has_carousel": len(link_children) > 1,
                "carousel_count": len(link_children),
                "image_source": resolution.provenance_tag,
            },
        )
        if self.cache_store and resolution.url:
            cached = await self.cache_store.cache(resolution, workspace_id, ad_id)
            record.cached_image_url = cached.cached_image_url
            record.cached_thumbnail_url = cached.cached_thumbnail_url
            record.cache_expires_at = cached.cache_expires_at
            record.file_size = cached.file_size

        record.is_complete = record.has_asset and record.has_copy
        record.fetch_status = compute_fetch_status(
            record.has_asset, record.has_copy, attempts, self.max_attempts
        )
        return record

    @staticmethod
    def _prefer_video_poster(resolution: ImageResolution, video: VideoAsset) -> ImageResolution:
        """Swap a missing or tile-sized image for the video's poster when that is better."""
        weak = (not resolution.url or resolution.quality == ImageQuality.LOW
                or is_low_resolution_url(resolution.url))
        if not weak or not video.url:
            return resolution
        if resolution.url and is_low_resolution_url(video.url):
            return resolution

        poster = video.poster()
        poster.original_thumbnail = resolution.original_thumbnail or video.original_thumbnail
        return poster
