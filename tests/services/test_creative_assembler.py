"""
Tests for CreativeRecordAssembler: type classification, copy extraction,
fetch status / attempt counting, video handling and cache wiring
(including an oversized download against a real AssetCacheStore).
"""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from adlens.services.asset_cache_service import AssetCacheStore
from adlens.services.creative_assembler import (
    CreativeRecordAssembler,
    compute_fetch_status,
    determine_creative_type,
    extract_texts,
)
from adlens.services.image_resolution_service import ImageResolutionResolver, ResolutionContext
from adlens.services.models import (
    CachedAssets,
    CreativeRecord,
    CreativeType,
    FetchStatus,
    ImageQuality,
    VideoAsset,
)

WORKSPACE_ID = "ws-1"
ACCOUNT_ID = "act_111"
AD_ID = "120210000000000001"

_RealAsyncClient = httpx.AsyncClient


@pytest.fixture
def graph():
    mock = MagicMock()
    mock.get_image_by_hash = AsyncMock(return_value={"url": "https://x.test/full.jpg"})
    mock.get_post = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def video_fetcher():
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(return_value=VideoAsset())
    return fetcher


@pytest.fixture
def cache_store():
    store = MagicMock()
    store.cache = AsyncMock(return_value=CachedAssets())
    return store


@pytest.fixture
def assembler(graph, video_fetcher, cache_store):
    resolver = ImageResolutionResolver(graph, ResolutionContext(ACCOUNT_ID), video_fetcher)
    return CreativeRecordAssembler(resolver, cache_store, max_attempts=3)


def _ad(creative=None, **extra):
    ad = {"id": AD_ID, "name": "Spring Sale", "status": "ACTIVE", "preview_shareable_link": "https://fb.me/p"}
    if creative is not None:
        ad["creative"] = creative
    ad.update(extra)
    return ad


# ============================================================================
# determine_creative_type
# ============================================================================

class TestDetermineCreativeType:
    @pytest.mark.parametrize("creative,expected", [
        ({"video_id": "v1"}, CreativeType.VIDEO),
        ({"object_story_spec": {"video_data": {"video_id": "v1"}}}, CreativeType.VIDEO),
        ({"object_story_spec": {"link_data": {"child_attachments": [{}, {}]}}}, CreativeType.CAROUSEL),
        ({"asset_feed_spec": {"videos": [{"video_id": "v"}], "bodies": [{"text": "x"}]}}, CreativeType.VIDEO),
        ({"asset_feed_spec": {"images": [{"hash": "h"}]}}, CreativeType.DYNAMIC),
        ({"image_hash": "h"}, CreativeType.IMAGE),
        ({"object_story_spec": {"link_data": {"picture": "https://x.test/p.jpg"}}}, CreativeType.IMAGE),
        ({"effective_object_story_id": "1_2"}, CreativeType.DYNAMIC),
        ({"name": "{{product.name}} - catalog"}, CreativeType.DYNAMIC),
        ({"effective_instagram_media_id": "ig1"}, CreativeType.DYNAMIC),
        ({"thumbnail_url": "https://x.test/t.jpg"}, CreativeType.IMAGE),
        ({}, CreativeType.UNKNOWN),
    ])
    def test_types(self, creative, expected):
        assert determine_creative_type(creative) == expected

    def test_single_child_is_not_carousel(self):
        creative = {"object_story_spec": {"link_data": {"child_attachments": [{"picture": "x"}]}}}
        assert determine_creative_type(creative) == CreativeType.UNKNOWN


# ============================================================================
# extract_texts
# ============================================================================

class TestExtractTexts:
    def test_creative_fields_win(self):
        creative = {
            "title": "Creative title",
            "body": "Creative body",
            "call_to_action_type": "SHOP_NOW",
            "object_story_spec": {"link_data": {
                "name": "Link name", "message": "Link message",
                "description": "Link description", "link": "https://shop.test",
            }},
        }
        post = {"name": "Post name", "message": "Post message"}

        texts = extract_texts(creative, post)

        assert texts.title == "Creative title"
        assert texts.body == "Creative body"
        assert texts.description == "Link description"
        assert texts.call_to_action == "SHOP_NOW"
        assert texts.link_url == "https://shop.test"

    def test_asset_feed_fields(self):
        creative = {"asset_feed_spec": {
            "titles": [{"text": "Feed title"}],
            "bodies": [{"text": "Feed body"}],
            "descriptions": [{"text": "Feed description"}],
            "call_to_action_types": ["LEARN_MORE"],
            "link_urls": [{"website_url": "https://feed.test"}],
        }}

        texts = extract_texts(creative)

        assert texts.title == "Feed title"
        assert texts.body == "Feed body"
        assert texts.description == "Feed description"
        assert texts.call_to_action == "LEARN_MORE"
        assert texts.link_url == "https://feed.test"

    def test_post_is_fallback(self):
        post = {
            "message": "Post message",
            "caption": "Post caption",
            "call_to_action": {"type": "BOOK_NOW", "value": {"link": "https://book.test"}},
            "attachments": {"data": [{"title": "Attachment title"}]},
        }

        texts = extract_texts({}, post)

        assert texts.title == "Attachment title"
        assert texts.body == "Post message"
        assert texts.description == "Post caption"
        assert texts.call_to_action == "BOOK_NOW"
        assert texts.link_url == "https://book.test"
        assert texts.has_copy is True

    def test_nothing(self):
        assert extract_texts({}).has_copy is False


class TestComputeFetchStatus:
    @pytest.mark.parametrize("has_asset,has_copy,attempts,expected", [
        (True, True, 1, FetchStatus.SUCCESS),
        (True, False, 1, FetchStatus.PARTIAL),
        (False, True, 5, FetchStatus.PARTIAL),
        (False, False, 1, FetchStatus.PENDING),
        (False, False, 2, FetchStatus.PENDING),
        (False, False, 3, FetchStatus.FAILED),
    ])
    def test_status(self, has_asset, has_copy, attempts, expected):
        assert compute_fetch_status(has_asset, has_copy, attempts, 3) == expected


# ============================================================================
# assemble
# ============================================================================

class TestAssemble:
    @pytest.mark.asyncio
    async def test_image_ad_success(self, assembler, cache_store):
        creative = {"id": "c1", "image_hash": "h1", "title": "Hello", "thumbnail_url": "https://x.test/p64x64/t.jpg"}

        record = await assembler.assemble(_ad(creative), ACCOUNT_ID, WORKSPACE_ID)

        assert record.ad_id == AD_ID
        assert record.meta_creative_id == "c1"
        assert record.creative_type == CreativeType.IMAGE
        assert record.image_url == "https://x.test/full.jpg"
        assert record.image_url_hd == "https://x.test/full.jpg"
        assert record.thumbnail_url == "https://x.test/p64x64/t.jpg"
        assert record.thumbnail_quality == ImageQuality.HD
        assert record.fetch_status == FetchStatus.SUCCESS
        assert record.is_complete is True
        assert record.fetch_attempts == 1
        assert record.preview_url == "https://fb.me/p"
        assert record.extra_data["image_source"] == "creative_image_hash"
        assert record.extra_data["ad_name"] == "Spring Sale"
        assert record.last_validated_at is not None
        cache_store.cache.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_attempts_increment_from_prior(self, assembler):
        prior = CreativeRecord(workspace_id=WORKSPACE_ID, ad_id=AD_ID, meta_ad_account_id=ACCOUNT_ID, fetch_attempts=4)

        record = await assembler.assemble(_ad({"title": "Only copy"}), ACCOUNT_ID, WORKSPACE_ID, prior)

        assert record.fetch_attempts == 5
        assert record.fetch_status == FetchStatus.PARTIAL
        assert record.is_complete is False

    @pytest.mark.asyncio
    async def test_no_creative_is_pending(self, assembler):
        record = await assembler.assemble(_ad(), ACCOUNT_ID, WORKSPACE_ID)

        assert record.creative_type == CreativeType.UNKNOWN
        assert record.fetch_status == FetchStatus.PENDING
        assert record.fetch_attempts == 1
        assert record.extra_data == {"ad_name": "Spring Sale", "ad_status": "ACTIVE"}

    @pytest.mark.asyncio
    async def test_no_creative_at_ceiling_is_failed(self, assembler):
        prior = CreativeRecord(workspace_id=WORKSPACE_ID, ad_id=AD_ID, meta_ad_account_id=ACCOUNT_ID, fetch_attempts=2)

        record = await assembler.assemble(_ad(), ACCOUNT_ID, WORKSPACE_ID, prior)

        assert record.fetch_status == FetchStatus.FAILED
        assert record.fetch_attempts == 3

    @pytest.mark.asyncio
    async def test_adcreatives_edge_fallback(self, assembler):
        ad = _ad(adcreatives={"data": [{"id": "c_edge", "body": "From the edge"}]})

        record = await assembler.assemble(ad, ACCOUNT_ID, WORKSPACE_ID)

        assert record.meta_creative_id == "c_edge"
        assert record.body == "From the edge"

    @pytest.mark.asyncio
    async def test_video_ad(self, assembler, video_fetcher):
        video_fetcher.fetch.return_value = VideoAsset(
            url="https://x.test/poster.jpg",
            hd_url="https://x.test/poster.jpg",
            quality=ImageQuality.HD,
            provenance_tag="video_thumbnail_hd",
            video_id="v1",
            video_source_url="https://video.test/clip.mp4",
            duration_seconds=12.0,
            format="mp4",
        )
        creative = {"id": "c2", "video_id": "v1", "body": "Watch this"}

        record = await assembler.assemble(_ad(creative), ACCOUNT_ID, WORKSPACE_ID)

        assert record.creative_type == CreativeType.VIDEO
        assert record.video_id == "v1"
        assert record.video_url == "https://video.test/clip.mp4"
        assert record.video_duration_seconds == 12.0
        assert record.video_format == "mp4"
        assert record.image_url == "https://x.test/poster.jpg"
        assert record.fetch_status == FetchStatus.SUCCESS
        video_fetcher.fetch.assert_awaited_once_with("v1")

    @pytest.mark.asyncio
    async def test_post_is_fetched_for_story_id(self, assembler, graph):
        graph.get_post.return_value = {"full_picture": "https://x.test/post.jpg", "message": "Post copy"}
        creative = {"id": "c3", "effective_object_story_id": "page_post"}

        record = await assembler.assemble(_ad(creative), ACCOUNT_ID, WORKSPACE_ID)

        assert record.image_url == "https://x.test/post.jpg"
        assert record.body == "Post copy"
        assert record.extra_data["post_data"]["message"] == "Post copy"
        graph.get_post.assert_awaited_once_with("page_post")

    @pytest.mark.asyncio
    async def test_cached_assets_copied(self, assembler, cache_store):
        cache_store.cache.return_value = CachedAssets(
            cached_image_url="https://storage.test/image.jpg",
            cached_thumbnail_url="https://storage.test/thumb.jpg",
            file_size=2048,
        )

        record = await assembler.assemble(_ad({"image_hash": "h1"}), ACCOUNT_ID, WORKSPACE_ID)

        assert record.cached_image_url == "https://storage.test/image.jpg"
        assert record.cached_thumbnail_url == "https://storage.test/thumb.jpg"
        assert record.file_size == 2048

    @pytest.mark.asyncio
    async def test_no_image_skips_cache(self, assembler, cache_store):
        await assembler.assemble(_ad({"body": "Copy only"}), ACCOUNT_ID, WORKSPACE_ID)
        cache_store.cache.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_download_leaves_record_uncached(self, graph, video_fetcher):
        supabase = MagicMock()
        store = AssetCacheStore(supabase, bucket="ad-media-cache", max_bytes=1024)
        resolver = ImageResolutionResolver(graph, ResolutionContext(ACCOUNT_ID), video_fetcher)
        assembler = CreativeRecordAssembler(resolver, store, max_attempts=3)

        def big(request):
            return httpx.Response(200, content=b"0" * 4096, headers={"content-type": "image/jpeg"})

        with patch(
            "adlens.services.asset_cache_service.httpx.AsyncClient",
            side_effect=lambda **kwargs: _RealAsyncClient(transport=httpx.MockTransport(big), **kwargs),
        ):
            record = await assembler.assemble(_ad({"image_hash": "h1", "title": "Hello"}), ACCOUNT_ID, WORKSPACE_ID)

        assert record.image_url == "https://x.test/full.jpg"
        assert record.cached_image_url is None
        assert record.file_size is None
        assert record.fetch_status == FetchStatus.SUCCESS
        assert record.is_complete is True
        supabase.storage.from_.return_value.upload.assert_not_called()
