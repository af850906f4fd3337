"""
Tests for ImageResolutionResolver: candidate ordering, low-res rejection,
hash lookups, video fallbacks, raw thumbnail upgrade and per-invocation
memoization.

The Graph API client is mocked; no network calls.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from adlens.services.image_resolution_service import (
    AssetHashCandidate,
    CarouselChildCandidate,
    ImageResolutionResolver,
    LinkPictureCandidate,
    PostImageCandidate,
    RawThumbnailUpgradeCandidate,
    ResolutionContext,
    VideoThumbnailCandidate,
    build_candidates,
)
from adlens.services.meta_graph_client import MetaGraphError
from adlens.services.models import ImageQuality, VideoAsset

ACCOUNT_ID = "act_111"
LOW_THUMB = "https://scontent.test/v/p64x64/thumb.jpg"
HD_IMAGE = "https://scontent.test/v/full/image.jpg"


@pytest.fixture
def graph():
    mock = MagicMock()
    mock.get_image_by_hash = AsyncMock(return_value=None)
    mock.get_post = AsyncMock(return_value={})
    mock.get_video = AsyncMock(return_value={})
    return mock


@pytest.fixture
def video_fetcher():
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(return_value=VideoAsset())
    return fetcher


@pytest.fixture
def context():
    return ResolutionContext(ad_account_id=ACCOUNT_ID)


@pytest.fixture
def resolver(graph, context, video_fetcher):
    return ImageResolutionResolver(graph, context, video_fetcher)


# ============================================================================
# build_candidates
# ============================================================================

class TestBuildCandidates:
    def test_empty_creative(self):
        assert build_candidates({}) == []

    def test_post_sources_come_first(self):
        creative = {"image_hash": "abc", "image_url": HD_IMAGE}
        post = {"full_picture": "https://x.test/full.jpg", "picture": "https://x.test/pic.jpg"}

        candidates = build_candidates(creative, post)

        assert isinstance(candidates[0], PostImageCandidate)
        assert candidates[0].tag == "post_full_picture"
        assert candidates[1] == LinkPictureCandidate("https://x.test/pic.jpg", "post_picture")
        assert candidates[2] == AssetHashCandidate("abc", "creative_image_hash")

    def test_full_order(self):
        creative = {
            "image_hash": "h_creative",
            "image_url": LOW_THUMB,
            "thumbnail_url": LOW_THUMB,
            "video_id": "v1",
            "asset_feed_spec": {
                "images": [{"hash": "h_feed", "url": "https://x.test/feed.jpg"}],
                "videos": [{"video_id": "v_feed", "thumbnail_url": "https://x.test/vthumb.jpg"}],
            },
            "object_story_spec": {
                "link_data": {
                    "image_hash": "h_link",
                    "picture": "https://x.test/link.jpg",
                    "child_attachments": [{"image_hash": "h_child", "picture": "https://x.test/child.jpg"}],
                },
            },
        }

        tags = [c.tag for c in build_candidates(creative)]

        assert tags == [
            "asset_feed_image_hash",
            "asset_feed_image_url",
            "creative_image_hash",
            "link_data_image_hash",
            "link_data_picture",
            "carousel_child",
            "asset_feed_video_thumb",
            "video_thumbnail",
            "creative_image_url",
            "creative_image_url_upgraded",
            "creative_thumbnail_upgraded",
        ]

    def test_template_child(self):
        creative = {"object_story_spec": {"template_data": {"child_attachments": [{"picture": "https://x.test/t.jpg"}]}}}
        candidates = build_candidates(creative)
        assert candidates == [CarouselChildCandidate("template_child", None, "https://x.test/t.jpg")]

    def test_video_id_from_video_data(self):
        creative = {"object_story_spec": {"video_data": {"video_id": "v9", "image_url": "https://x.test/v.jpg"}}}
        candidates = build_candidates(creative)
        assert candidates == [
            LinkPictureCandidate("https://x.test/v.jpg", "video_data_image_url"),
            VideoThumbnailCandidate("video_thumbnail", "v9"),
        ]

    def test_thumbnail_only(self):
        assert build_candidates({"thumbnail_url": LOW_THUMB}) == [
            RawThumbnailUpgradeCandidate(LOW_THUMB, "creative_thumbnail_upgraded")
        ]


# ============================================================================
# resolve
# ============================================================================

class TestResolve:
    @pytest.mark.asyncio
    async def test_nothing_found(self, resolver):
        result = await resolver.resolve({})
        assert result.url is None
        assert result.provenance_tag == "none"
        assert result.quality == ImageQuality.UNKNOWN

    @pytest.mark.asyncio
    async def test_post_full_picture_is_hd(self, resolver):
        creative = {"thumbnail_url": LOW_THUMB}
        post = {"full_picture": "https://x.test/full.jpg"}

        result = await resolver.resolve(creative, post=post)

        assert result.url == "https://x.test/full.jpg"
        assert result.hd_url == "https://x.test/full.jpg"
        assert result.quality == ImageQuality.HD
        assert result.original_thumbnail == LOW_THUMB
        assert result.provenance_tag == "post_full_picture"

    @pytest.mark.asyncio
    async def test_post_full_picture_ignores_size_params(self, resolver):
        post = {"full_picture": "https://x.test/full.jpg?w=130&h=130"}

        result = await resolver.resolve({"thumbnail_url": LOW_THUMB}, post=post)

        assert result.quality == ImageQuality.HD
        assert result.hd_url == "https://x.test/full.jpg?w=130&h=130"
        assert result.width is None
        assert result.height is None

    @pytest.mark.asyncio
    async def test_hash_preview_urls_are_not_full_resolution(self, resolver, graph):
        graph.get_image_by_hash.return_value = {"hash": "abc", "url_128": "https://x.test/128.jpg",
                                                "url_256": "https://x.test/256.jpg"}
        creative = {"image_hash": "abc", "image_url": "https://x.test/creative.jpg"}

        result = await resolver.resolve(creative)

        assert result.url == "https://x.test/creative.jpg"
        assert result.provenance_tag == "creative_image_url"
        assert result.hd_url is None

    @pytest.mark.asyncio
    async def test_permalink_url_accepted_for_hash(self, resolver, graph):
        graph.get_image_by_hash.return_value = {"permalink_url": HD_IMAGE, "url_128": "https://x.test/128.jpg"}

        result = await resolver.resolve({"image_hash": "abc"})

        assert result.url == HD_IMAGE
        assert result.quality == ImageQuality.HD

    @pytest.mark.asyncio
    async def test_malformed_picture_url_does_not_raise(self, resolver):
        creative = {"object_story_spec": {"link_data": {"picture": "https://[bad/x.jpg"}}}

        result = await resolver.resolve(creative)

        assert result.url == "https://[bad/x.jpg"
        assert result.provenance_tag == "link_data_picture"

    @pytest.mark.asyncio
    async def test_hash_lookup_with_dimensions_is_classified(self, resolver, graph):
        graph.get_image_by_hash.return_value = {"url": HD_IMAGE, "width": 600, "height": 600}

        result = await resolver.resolve({"image_hash": "abc"})

        assert result.url == HD_IMAGE
        assert result.quality == ImageQuality.LOW
        assert result.hd_url is None
        assert result.provenance_tag == "creative_image_hash"
        graph.get_image_by_hash.assert_awaited_once_with(ACCOUNT_ID, "abc")

    @pytest.mark.asyncio
    async def test_hash_lookup_without_dimensions_is_hd(self, resolver, graph):
        graph.get_image_by_hash.return_value = {"url": HD_IMAGE}

        result = await resolver.resolve({"image_hash": "abc"})

        assert result.quality == ImageQuality.HD
        assert result.hd_url == HD_IMAGE

    @pytest.mark.asyncio
    async def test_low_res_pictures_are_skipped(self, resolver, graph):
        creative = {
            "object_story_spec": {"link_data": {"picture": LOW_THUMB}},
            "image_url": "https://x.test/creative.jpg",
        }

        result = await resolver.resolve(creative)

        assert result.url == "https://x.test/creative.jpg"
        assert result.provenance_tag == "creative_image_url"
        assert result.quality == ImageQuality.UNKNOWN

    @pytest.mark.asyncio
    async def test_failed_hash_falls_through(self, resolver, graph):
        graph.get_image_by_hash.side_effect = MetaGraphError("Invalid hash", code=100)
        creative = {"image_hash": "bad", "object_story_spec": {"link_data": {"picture": "https://x.test/l.jpg"}}}

        result = await resolver.resolve(creative)

        assert result.url == "https://x.test/l.jpg"
        assert result.provenance_tag == "link_data_picture"

    @pytest.mark.asyncio
    async def test_carousel_child_picture_when_hash_unknown(self, resolver):
        creative = {"object_story_spec": {"link_data": {"child_attachments": [
            {"image_hash": "nope", "picture": "https://x.test/c1.jpg"},
            {"picture": "https://x.test/c2.jpg"},
        ]}}}

        result = await resolver.resolve(creative)

        assert result.url == "https://x.test/c1.jpg"
        assert result.provenance_tag == "carousel_child_picture"

    @pytest.mark.asyncio
    async def test_video_thumbnail_fetch(self, resolver, video_fetcher):
        video_fetcher.fetch.return_value = VideoAsset(
            url="https://x.test/poster.jpg",
            hd_url="https://x.test/poster.jpg",
            quality=ImageQuality.HD,
            provenance_tag="video_thumbnail_hd",
            video_id="v1",
        )

        result = await resolver.resolve({"video_id": "v1", "thumbnail_url": LOW_THUMB})

        assert result.url == "https://x.test/poster.jpg"
        assert result.quality == ImageQuality.HD
        assert result.original_thumbnail == LOW_THUMB
        video_fetcher.fetch.assert_awaited_once_with("v1")

    @pytest.mark.asyncio
    async def test_known_video_is_not_refetched(self, resolver, video_fetcher):
        known = {"v1": VideoAsset(url="https://x.test/poster.jpg", provenance_tag="video_picture")}

        result = await resolver.resolve({"video_id": "v1"}, videos=known)

        assert result.url == "https://x.test/poster.jpg"
        video_fetcher.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_raw_thumbnail_upgrade_is_low(self, resolver):
        result = await resolver.resolve({"thumbnail_url": LOW_THUMB})

        assert result.url == "https://scontent.test/v/p720x720/thumb.jpg"
        assert result.original_thumbnail == LOW_THUMB
        assert result.quality == ImageQuality.LOW
        assert result.provenance_tag == "creative_thumbnail_upgraded"

    @pytest.mark.asyncio
    async def test_low_image_url_upgraded(self, resolver):
        result = await resolver.resolve({"image_url": LOW_THUMB})

        assert result.provenance_tag == "creative_image_url_upgraded"
        assert result.original_thumbnail == LOW_THUMB
        assert result.quality == ImageQuality.LOW


# ============================================================================
# Memoization
# ============================================================================

class TestMemoization:
    @pytest.mark.asyncio
    async def test_hash_looked_up_once_per_context(self, resolver, graph):
        graph.get_image_by_hash.return_value = {"url": HD_IMAGE}

        await resolver.resolve({"image_hash": "shared"})
        await resolver.resolve({"image_hash": "shared"})

        assert graph.get_image_by_hash.await_count == 1

    @pytest.mark.asyncio
    async def test_misses_are_remembered(self, resolver, graph, context):
        await resolver.resolve_image_hash("missing")
        await resolver.resolve_image_hash("missing")

        assert graph.get_image_by_hash.await_count == 1
        assert context.images_by_hash == {"missing": None}

    @pytest.mark.asyncio
    async def test_new_context_looks_up_again(self, graph, video_fetcher):
        graph.get_image_by_hash.return_value = {"url": HD_IMAGE}

        for _ in range(2):
            resolver = ImageResolutionResolver(graph, ResolutionContext(ACCOUNT_ID), video_fetcher)
            await resolver.resolve({"image_hash": "shared"})

        assert graph.get_image_by_hash.await_count == 2

    @pytest.mark.asyncio
    async def test_post_fetched_once(self, resolver, graph):
        graph.get_post.return_value = {"full_picture": "https://x.test/full.jpg"}

        first = await resolver.fetch_post("page_1")
        second = await resolver.fetch_post("page_1")

        assert first == second
        graph.get_post.assert_awaited_once_with("page_1")

    @pytest.mark.asyncio
    async def test_post_error_returns_none(self, resolver, graph):
        graph.get_post.side_effect = MetaGraphError("Unsupported get request", code=100)

        assert await resolver.fetch_post("page_2") is None
