"""
CreativeRepository - Supabase access for the creative pipeline.

Tables:
- workspaces / workspace_members: which workspace a user acts in
- meta_connections: encrypted Meta access token per workspace
- meta_ad_creatives: one row per (workspace_id, ad_id)

The supabase-py client is synchronous; calls run in a worker thread so
the event loop keeps serving concurrent ads.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import Client

from .models import CreativeRecord

logger = logging.getLogger(__name__)

CREATIVES_TABLE = "meta_ad_creatives"
UPSERT_RPC = "upsert_ad_creative_with_increment"
UNDEFINED_FUNCTION_CODE = "42883"

# Columns passed to the upsert RPC as p_<column>; fetch_attempts is
# incremented server-side.
RPC_COLUMNS = (
    "workspace_id", "ad_id", "meta_ad_account_id", "meta_creative_id", "creative_type",
    "image_url", "image_url_hd", "thumbnail_url", "thumbnail_quality",
    "image_width", "image_height", "video_url", "video_id", "preview_url",
    "title", "body", "description", "call_to_action", "link_url",
    "is_complete", "fetch_status", "error_message", "extra_data",
    "cached_image_url", "cached_thumbnail_url", "cache_expires_at", "file_size",
)


class WorkspaceNotFoundError(Exception):
    """Raised when a user owns no workspace and belongs to none."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Workspace not found for user {user_id}")


class MetaConnectionError(Exception):
    """Raised when a workspace has no connected Meta account."""

    def __init__(self, workspace_id: str):
        self.workspace_id = workspace_id
        super().__init__(f"Meta connection not found for workspace {workspace_id}")


class CreativeRepository:
    """Reads and writes creative pipeline state in Supabase."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    async def get_user_workspace(self, user_id: str) -> str:
        """
        Workspace a user acts in: the one they own, else their first membership.

        Raises:
            WorkspaceNotFoundError: If the user has neither
        """
        owned = await asyncio.to_thread(
            lambda: self.supabase.table("workspaces").select("id").eq(
                "owner_id", user_id
            ).limit(1).execute()
        )
        if owned.data:
            return owned.data[0]["id"]

        member = await asyncio.to_thread(
            lambda: self.supabase.table("workspace_members").select("workspace_id").eq(
                "user_id", user_id
            ).limit(1).execute()
        )
        if member.data:
            return member.data[0]["workspace_id"]

        raise WorkspaceNotFoundError(user_id)

    async def get_access_token(self, workspace_id: str) -> Optional[str]:
        """
        Decrypted Meta access token of the workspace's connected account.

        Returns:
            The token, or None when no connected account exists
        """
        result = await asyncio.to_thread(
            lambda: self.supabase.table("meta_connections").select(
                "id, access_token_encrypted, status"
            ).eq("workspace_id", workspace_id).eq("status", "connected").limit(1).execute()
        )
        if not result.data:
            return None

        encrypted = result.data[0].get("access_token_encrypted")
        if not encrypted:
            return None

        try:
            decrypted = await asyncio.to_thread(
                lambda: self.supabase.rpc("decrypt_token", {"p_encrypted_token": encrypted}).execute()
            )
            if decrypted.data:
                return decrypted.data
        except APIError as e:
            logger.warning(f"decrypt_token failed for workspace {workspace_id}: {e.message}")

        # Tokens stored before encryption was enabled are plain text
        return encrypted

    async def get_creatives(self, workspace_id: str, ad_ids: List[str]) -> Dict[str, CreativeRecord]:
        """Stored creatives for the given ads, keyed by ad ID."""
        if not ad_ids:
            return {}

        result = await asyncio.to_thread(
            lambda: self.supabase.table(CREATIVES_TABLE).select("*").eq(
                "workspace_id", workspace_id
            ).in_("ad_id", ad_ids).execute()
        )

        records: Dict[str, CreativeRecord] = {}
        for row in result.data or []:
            try:
                record = CreativeRecord.model_validate(row)
            except ValueError as e:
                logger.warning(f"Skipping unreadable creative row for ad {row.get('ad_id')}: {e}")
                continue
            records[record.ad_id] = record
        return records

    async def upsert_creative(self, record: CreativeRecord) -> bool:
        """
        Write a creative, keyed by (workspace_id, ad_id).

        Uses the increment RPC; falls back to a plain table upsert when the
        RPC is not installed.

        Returns:
            True if written, False if the write failed (logged)
        """
        row = record.to_row()
        params: Dict[str, Any] = {f"p_{column}": row.get(column) for column in RPC_COLUMNS}

        try:
            await asyncio.to_thread(lambda: self.supabase.rpc(UPSERT_RPC, params).execute())
            return True
        except APIError as e:
            if not self._is_missing_function(e):
                logger.error(f"Upsert failed for ad {record.ad_id}: {e.message}")
                return False

        try:
            await asyncio.to_thread(
                lambda: self.supabase.table(CREATIVES_TABLE).upsert(
                    row,
                    on_conflict="workspace_id,ad_id"
                ).execute()
            )
            return True
        except APIError as e:
            logger.error(f"Fallback upsert failed for ad {record.ad_id}: {e.message}")
            return False

    @staticmethod
    def _is_missing_function(error: APIError) -> bool:
        return error.code == UNDEFINED_FUNCTION_CODE or "function" in (error.message or "")
