"""
MetaGraphClient - thin async client for the Meta Graph API.

Covers the five calls the creative pipeline needs:
- single ad fetch (ad + creative fields)
- batched ad fetch (up to 50 relative requests per POST)
- image-by-hash lookup (act_X/adimages) for full-resolution URLs
- video metadata (thumbnails, poster, playable source, length)
- originating post lookup (effective_object_story_id)

Error payloads are raised as MetaGraphError carrying Meta's numeric code;
transport failures surface as httpx exceptions for the caller to classify.
"""

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..core.config import Config

logger = logging.getLogger(__name__)


class MetaGraphError(Exception):
    """Raised when the Graph API answers with an error payload."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        error_type: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.error_type = error_type
        self.http_status = http_status
        super().__init__(f"Meta API error {code}: {message}" if code is not None else message)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], http_status: Optional[int] = None) -> "MetaGraphError":
        error = payload.get("error") or {}
        if not isinstance(error, dict):
            return cls(str(error), http_status=http_status)
        return cls(
            message=error.get("message") or "Unknown Meta API error",
            code=error.get("code"),
            error_type=error.get("type"),
            http_status=http_status,
        )


class MetaGraphClient:
    """
    Async Graph API client bound to one access token.

    One instance per invocation; it holds no state besides the token.
    """

    # Fields requested per ad: the creative inline plus the adcreatives edge,
    # which is the only place some dynamic ads expose their creative.
    CREATIVE_FIELDS = (
        "id,name,title,body,image_url,thumbnail_url,video_id,image_hash,call_to_action_type,"
        "object_story_spec,effective_object_story_id,effective_instagram_media_id,"
        "object_id,asset_feed_spec"
    )
    AD_FIELDS = (
        "id,name,status,preview_shareable_link,"
        f"creative{{{CREATIVE_FIELDS}}},"
        "adcreatives{id,name,title,body,image_url,thumbnail_url,video_id,image_hash,"
        "object_story_spec,asset_feed_spec,effective_object_story_id}"
    )
    POST_FIELDS = (
        "message,story,description,name,caption,full_picture,picture,call_to_action,"
        "attachments{title,description,url,media}"
    )
    VIDEO_FIELDS = "thumbnails{uri,width,height},picture,source,length"
    AD_IMAGE_FIELDS = "hash,url,url_128,url_256,permalink_url,width,height"

    def __init__(
        self,
        access_token: str,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the client.

        Args:
            access_token: Meta Graph API access token for the workspace
            api_url: Versioned Graph API root (defaults to Config)
            timeout: Request timeout in seconds (defaults to Config)
        """
        self.access_token = access_token
        self.api_url = (api_url or Config.graph_api_url()).rstrip("/")
        self.timeout = timeout or Config.META_REQUEST_TIMEOUT

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET a Graph node/edge and return its JSON body, raising on error payloads."""
        query = dict(params or {})
        query["access_token"] = self.access_token

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            response = await client.get(f"{self.api_url}/{path.lstrip('/')}", params=query)

        try:
            data = response.json()
        except ValueError:
            raise MetaGraphError(
                f"Non-JSON response (HTTP {response.status_code})",
                http_status=response.status_code,
            )

        if isinstance(data, dict) and data.get("error"):
            raise MetaGraphError.from_payload(data, http_status=response.status_code)
        if response.status_code >= 400:
            raise MetaGraphError(f"HTTP {response.status_code}", http_status=response.status_code)

        return data

    async def get_ad(self, ad_id: str) -> Dict[str, Any]:
        """Fetch one ad with its creative."""
        return await self._get(ad_id, {"fields": self.AD_FIELDS})

    async def get_ads_batch(self, ad_ids: List[str]) -> List[Optional[Dict[str, Any]]]:
        """
        Fetch several ads in one batched request.

        Args:
            ad_ids: At most Config.META_BATCH_SIZE ad IDs

        Returns:
            One entry per requested ad, in order: {"code": int, "body": str}
            or None when Meta dropped the item (e.g. it timed out server-side).

        Raises:
            MetaGraphError: If the batch call itself was rejected
            httpx.HTTPError: On transport failure
        """
        fields = quote(self.AD_FIELDS, safe="")
        requests = [
            {"method": "GET", "relative_url": f"{ad_id}?fields={fields}"}
            for ad_id in ad_ids
        ]

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            response = await client.post(
                f"{self.api_url}/",
                data={
                    "access_token": self.access_token,
                    "batch": json.dumps(requests),
                },
            )

        try:
            data = response.json()
        except ValueError:
            raise MetaGraphError(
                f"Non-JSON batch response (HTTP {response.status_code})",
                http_status=response.status_code,
            )

        if isinstance(data, dict):
            raise MetaGraphError.from_payload(data, http_status=response.status_code)
        if not isinstance(data, list):
            raise MetaGraphError("Unexpected batch response shape", http_status=response.status_code)

        # Pad so callers can zip results with the requested ids
        items: List[Optional[Dict[str, Any]]] = list(data[: len(ad_ids)])
        items.extend([None] * (len(ad_ids) - len(items)))
        return items

    async def get_image_by_hash(self, ad_account_id: str, image_hash: str) -> Optional[Dict[str, Any]]:
        """
        Look up an ad image by content hash.

        Returns:
            The adimages entry (url, width, height, ...) or None if unknown
        """
        account_id = ad_account_id if ad_account_id.startswith("act_") else f"act_{ad_account_id}"
        data = await self._get(
            f"{account_id}/adimages",
            {"hashes": json.dumps([image_hash]), "fields": self.AD_IMAGE_FIELDS},
        )
        images = data.get("data") or []
        return images[0] if images else None

    async def get_video(self, video_id: str) -> Dict[str, Any]:
        """Fetch thumbnails, poster, playable source and length of a video."""
        return await self._get(video_id, {"fields": self.VIDEO_FIELDS})

    async def get_post(self, post_id: str) -> Dict[str, Any]:
        """Fetch the originating page post of a creative."""
        return await self._get(post_id, {"fields": self.POST_FIELDS})
