"""
Tests for MetaGraphClient: request shapes and error payload handling.

Requests go through httpx.MockTransport; no network calls.
"""

import json
from urllib.parse import parse_qs

import httpx
import pytest
from unittest.mock import patch

from adlens.services.meta_graph_client import MetaGraphClient, MetaGraphError

API_URL = "https://graph.test/v21.0"

_RealAsyncClient = httpx.AsyncClient


def _patch_transport(handler):
    def factory(**kwargs):
        return _RealAsyncClient(transport=httpx.MockTransport(handler), **kwargs)
    return patch("adlens.services.meta_graph_client.httpx.AsyncClient", side_effect=factory)


@pytest.fixture
def client():
    return MetaGraphClient("token-123", api_url=API_URL, timeout=5)


class TestGet:
    @pytest.mark.asyncio
    async def test_get_ad_sends_fields_and_token(self, client):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            return httpx.Response(200, json={"id": "a1"})

        with _patch_transport(handler):
            data = await client.get_ad("a1")

        assert data == {"id": "a1"}
        assert seen["url"].path == "/v21.0/a1"
        assert seen["url"].params["access_token"] == "token-123"
        assert "creative{" in seen["url"].params["fields"]

    @pytest.mark.asyncio
    async def test_error_payload_raises_with_code(self, client):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "Invalid OAuth access token", "code": 190, "type": "OAuthException"}})

        with _patch_transport(handler):
            with pytest.raises(MetaGraphError) as exc:
                await client.get_video("v1")

        assert exc.value.code == 190
        assert exc.value.error_type == "OAuthException"
        assert exc.value.http_status == 400

    @pytest.mark.asyncio
    async def test_non_json_raises(self, client):
        with _patch_transport(lambda request: httpx.Response(502, text="Bad Gateway")):
            with pytest.raises(MetaGraphError):
                await client.get_post("p1")


class TestImageByHash:
    @pytest.mark.asyncio
    async def test_adds_act_prefix_and_returns_first(self, client):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            return httpx.Response(200, json={"data": [{"hash": "h1", "url": "https://x.test/h1.jpg"}]})

        with _patch_transport(handler):
            entry = await client.get_image_by_hash("111", "h1")

        assert entry["url"] == "https://x.test/h1.jpg"
        assert seen["url"].path == "/v21.0/act_111/adimages"
        assert json.loads(seen["url"].params["hashes"]) == ["h1"]

    @pytest.mark.asyncio
    async def test_unknown_hash(self, client):
        with _patch_transport(lambda request: httpx.Response(200, json={"data": []})):
            assert await client.get_image_by_hash("act_111", "nope") is None


class TestBatch:
    @pytest.mark.asyncio
    async def test_batch_request_shape_and_padding(self, client):
        seen = {}

        def handler(request):
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json=[{"code": 200, "body": "{}"}])

        with _patch_transport(handler):
            items = await client.get_ads_batch(["a1", "a2"])

        batch = json.loads(seen["form"]["batch"][0])
        assert [b["relative_url"].split("?")[0] for b in batch] == ["a1", "a2"]
        assert all(b["method"] == "GET" for b in batch)
        assert seen["form"]["access_token"] == ["token-123"]
        assert items == [{"code": 200, "body": "{}"}, None]

    @pytest.mark.asyncio
    async def test_batch_rejected(self, client):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "Too many calls", "code": 4}})

        with _patch_transport(handler):
            with pytest.raises(MetaGraphError) as exc:
                await client.get_ads_batch(["a1"])
        assert exc.value.code == 4
