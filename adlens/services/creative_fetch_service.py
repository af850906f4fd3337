"""
CreativeFetchService - fetch, resolve, cache and persist Meta ad creatives.

Entry points:
- fetch_creatives_batch: many ads, store first, Graph API for the rest
- fetch_creative: one ad, optionally bypassing the store
- enrich_creative: one ad, always re-fetched, stamped as enriched
- cache_media: durable copy of one media file (e.g. a video source) on request

Flow per invocation:
    stored records -> CacheValidityPolicy -> BatchOrchestrator
      (batched Graph API calls -> CreativeRecordAssembler -> upsert)
    -> stored + fresh records merged into one BatchFetchResult
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import logfire
from supabase import Client

from ..core.config import Config
from ..core.database import get_supabase_client
from .asset_cache_service import AssetCacheStore
from .cache_validity import CacheValidityPolicy
from .creative_assembler import CreativeRecordAssembler
from .creative_repository import CreativeRepository, MetaConnectionError
from .image_resolution_service import ImageResolutionResolver, ResolutionContext
from .meta_graph_client import MetaGraphClient, MetaGraphError
from .models import BatchFetchResult, CachedMedia, CreativeFetchResult, CreativeRecord, MediaType

logger = logging.getLogger(__name__)

BATCH_REQUEST_FAILED = "Batch request failed"
NO_RESPONSE = "No response"
PARSE_FAILED = "Failed to parse response"
LESS_DATA = "Upgrade returned less data than the stored creative"


class CreativeFetchError(Exception):
    """Raised when a single-ad fetch has nothing to return."""

    def __init__(self, ad_id: str, reason: str):
        self.ad_id = ad_id
        self.reason = reason
        super().__init__(f"Failed to fetch creative for ad {ad_id}: {reason}")


class MediaCacheError(Exception):
    """Raised when an on-demand media copy could not be stored."""

    def __init__(self, ad_id: str, media_type: MediaType):
        self.ad_id = ad_id
        self.media_type = media_type
        super().__init__(f"Failed to cache {media_type.value} for ad {ad_id}")


def _usable_score(record: CreativeRecord) -> int:
    return int(record.has_asset) + int(record.has_copy)


class BatchOrchestrator:
    """
    Fetches ads from the Graph API in chunks and turns them into stored records.

    Chunks run one after another with a pacing delay; ads inside a chunk
    are assembled concurrently.
    """

    def __init__(
        self,
        graph: MetaGraphClient,
        assembler: CreativeRecordAssembler,
        repository: CreativeRepository,
        batch_size: Optional[int] = None,
        pacing_seconds: Optional[float] = None,
    ):
        self.graph = graph
        self.assembler = assembler
        self.repository = repository
        self.batch_size = batch_size or Config.META_BATCH_SIZE
        self.pacing_seconds = Config.META_BATCH_PACING_SECONDS if pacing_seconds is None else pacing_seconds

    async def run(
        self,
        ad_ids: List[str],
        account_id: str,
        workspace_id: str,
        prior: Optional[Dict[str, CreativeRecord]] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> BatchFetchResult:
        """
        Fetch and persist creatives for ads that need it.

        Args:
            ad_ids: Ads to fetch (deduplicated)
            account_id: Meta ad account ID
            workspace_id: Owning workspace
            prior: Stored records by ad ID (attempt counts, provisional data)
            extra_data: Merged into each fresh record's extra_data

        Returns:
            BatchFetchResult with fresh records and per-ad errors
        """
        prior = prior or {}
        result = BatchFetchResult()

        for start in range(0, len(ad_ids), self.batch_size):
            chunk = ad_ids[start:start + self.batch_size]

            with logfire.span("fetch_creatives_chunk", workspace_id=workspace_id, size=len(chunk)):
                await self._run_chunk(chunk, account_id, workspace_id, prior, extra_data, result)

            if start + self.batch_size < len(ad_ids):
                await asyncio.sleep(self.pacing_seconds)

        return result

    async def _run_chunk(
        self,
        chunk: List[str],
        account_id: str,
        workspace_id: str,
        prior: Dict[str, CreativeRecord],
        extra_data: Optional[Dict[str, Any]],
        result: BatchFetchResult,
    ) -> None:
        try:
            items = await self.graph.get_ads_batch(chunk)
        except (MetaGraphError, httpx.HTTPError) as e:
            logger.error(f"Batch request error for {len(chunk)} ads: {e}")
            for ad_id in chunk:
                result.errors[ad_id] = BATCH_REQUEST_FAILED
            return

        outcomes = await asyncio.gather(
            *[
                self._process_item(ad_id, item, account_id, workspace_id, prior.get(ad_id), extra_data)
                for ad_id, item in zip(chunk, items)
            ],
            return_exceptions=True,
        )

        for ad_id, outcome in zip(chunk, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Unexpected error processing ad {ad_id}: {outcome}")
                result.errors[ad_id] = str(outcome) or type(outcome).__name__
                continue

            record, error = outcome
            if record is not None:
                result.records[ad_id] = record
                result.fetched_count += 1
            if error:
                result.errors[ad_id] = error

    async def _process_item(
        self,
        ad_id: str,
        item: Optional[Dict[str, Any]],
        account_id: str,
        workspace_id: str,
        prior: Optional[CreativeRecord],
        extra_data: Optional[Dict[str, Any]],
    ) -> Tuple[Optional[CreativeRecord], Optional[str]]:
        """Returns (record, error) for one batch item; both are set when the stored record is kept."""
        ad_data, error = self._parse_item(item)
        if error:
            logger.warning(f"Error fetching ad {ad_id}: {error}")
            return None, error

        ad_data.setdefault("id", ad_id)
        record = await self.assembler.assemble(ad_data, account_id, workspace_id, prior)

        if prior is not None and _usable_score(record) < _usable_score(prior):
            logger.info(f"Ad {ad_id}: keeping stored record, fresh fetch has less data")
            kept = self._keep_prior(prior, record)
            if not await self.repository.upsert_creative(kept):
                logger.warning(f"Ad {ad_id}: attempt not recorded")
            return kept, LESS_DATA

        if extra_data:
            record.extra_data.update(extra_data)

        if not await self.repository.upsert_creative(record):
            logger.warning(f"Ad {ad_id}: creative not persisted, returning it anyway")

        return record, None

    @staticmethod
    def _keep_prior(prior: CreativeRecord, fresh: CreativeRecord) -> CreativeRecord:
        """Stored data carrying the fresh attempt count and validation time."""
        update = {
            "fetch_attempts": fresh.fetch_attempts,
            "last_validated_at": fresh.last_validated_at,
            "error_message": LESS_DATA,
        }
        if fresh.cached_thumbnail_url and not prior.cached_thumbnail_url:
            update["cached_thumbnail_url"] = fresh.cached_thumbnail_url
            update["cache_expires_at"] = fresh.cache_expires_at
        return prior.model_copy(update=update)

    @staticmethod
    def _parse_item(item: Optional[Dict[str, Any]]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
        if item is None:
            return None, NO_RESPONSE

        code = item.get("code")
        if code != 200:
            return None, f"HTTP {code}"

        try:
            ad_data = json.loads(item.get("body") or "")
        except ValueError:
            return None, PARSE_FAILED

        if not isinstance(ad_data, dict):
            return None, PARSE_FAILED

        if ad_data.get("error"):
            error = ad_data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            return None, message or "Unknown Meta API error"

        return ad_data, None


class CreativeFetchService:
    """
    Creative fetch entry points for a user's workspace.

    All collaborators are built per invocation except the Supabase client,
    repository and cache store, which hold no per-invocation state.
    """

    def __init__(
        self,
        supabase: Optional[Client] = None,
        repository: Optional[CreativeRepository] = None,
        cache_store: Optional[AssetCacheStore] = None,
        policy: Optional[CacheValidityPolicy] = None,
        graph_factory: Optional[Callable[[str], MetaGraphClient]] = None,
    ):
        """
        Initialize CreativeFetchService.

        Args:
            supabase: Optional Supabase client. If not provided, creates one.
            repository: Overrides the Supabase-backed repository
            cache_store: Overrides the Supabase Storage cache
            policy: Overrides the default cache validity policy
            graph_factory: Builds a Graph API client from an access token
        """
        if repository is None or cache_store is None:
            supabase = supabase or get_supabase_client()
        self.repository = repository or CreativeRepository(supabase)
        self.cache_store = cache_store or AssetCacheStore(supabase)
        self.policy = policy or CacheValidityPolicy()
        self.graph_factory = graph_factory or MetaGraphClient
        logger.info("CreativeFetchService initialized")

    async def fetch_creatives_batch(
        self,
        user_id: str,
        ad_ids: List[str],
        account_id: str,
        force_refresh: bool = False,
    ) -> BatchFetchResult:
        """
        Creatives for many ads, from the store where possible.

        Args:
            user_id: Authenticated user
            ad_ids: Meta ad IDs (duplicates collapsed)
            account_id: Meta ad account ID
            force_refresh: Re-fetch every ad, keeping stored data as fallback

        Returns:
            BatchFetchResult; every requested ad is in records or errors

        Raises:
            WorkspaceNotFoundError: User has no workspace
            MetaConnectionError: A fetch is needed but no Meta account is connected
        """
        workspace_id = await self.repository.get_user_workspace(user_id)
        return await self.fetch_for_workspace(workspace_id, ad_ids, account_id, force_refresh)

    async def fetch_creative(
        self,
        user_id: str,
        ad_id: str,
        account_id: str,
        force_refresh: bool = False,
    ) -> CreativeFetchResult:
        """
        Creative for one ad.

        Raises:
            WorkspaceNotFoundError, MetaConnectionError
            CreativeFetchError: Nothing stored and the fetch failed
        """
        workspace_id = await self.repository.get_user_workspace(user_id)
        result = await self.fetch_for_workspace(workspace_id, [ad_id], account_id, force_refresh)
        return self._single(ad_id, result)

    async def enrich_creative(self, user_id: str, ad_id: str, account_id: str) -> CreativeFetchResult:
        """
        Re-fetch one ad regardless of what is stored and mark it enriched.

        Raises:
            WorkspaceNotFoundError, MetaConnectionError
            CreativeFetchError: The refresh failed
        """
        workspace_id = await self.repository.get_user_workspace(user_id)
        result = await self.fetch_for_workspace(
            workspace_id, [ad_id], account_id, force_refresh=True,
            extra_data={"enriched_at": datetime.now(timezone.utc).isoformat()},
        )
        if ad_id in result.errors:
            raise CreativeFetchError(ad_id, result.errors[ad_id])
        return self._single(ad_id, result)

    async def cache_media(
        self,
        user_id: str,
        ad_id: str,
        media_url: str,
        media_type: MediaType,
    ) -> CachedMedia:
        """
        Store a durable copy of one media file for an ad in the user's workspace.

        Raises:
            WorkspaceNotFoundError: User has no workspace
            MediaCacheError: Download, size cap or storage write failed
        """
        workspace_id = await self.repository.get_user_workspace(user_id)
        return await self.cache_media_for_workspace(workspace_id, ad_id, media_url, media_type)

    async def cache_media_for_workspace(
        self,
        workspace_id: str,
        ad_id: str,
        media_url: str,
        media_type: MediaType,
    ) -> CachedMedia:
        """Media copy for a known workspace (no user lookup)."""
        media_type = MediaType(media_type)
        with logfire.span("cache_ad_media", workspace_id=workspace_id, media_type=media_type.value):
            cached = await self.cache_store.cache_media(media_url, media_type, workspace_id, ad_id)

        if cached is None:
            raise MediaCacheError(ad_id, media_type)
        return cached

    async def fetch_for_workspace(
        self,
        workspace_id: str,
        ad_ids: List[str],
        account_id: str,
        force_refresh: bool = False,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> BatchFetchResult:
        """
        Batch fetch for a known workspace (no user lookup).

        Raises:
            MetaConnectionError: A fetch is needed but no Meta account is connected
        """
        ad_ids = list(dict.fromkeys(str(ad_id) for ad_id in ad_ids if ad_id))
        if not ad_ids:
            return BatchFetchResult()

        with logfire.span("fetch_creatives_batch", workspace_id=workspace_id, ad_count=len(ad_ids)):
            stored = await self.repository.get_creatives(workspace_id, ad_ids)
            decision = self.policy.partition(ad_ids, stored, force_refresh=force_refresh)

            result = BatchFetchResult(
                records={**decision.served, **decision.provisional},
                cached_count=len(decision.served),
            )
            if not decision.to_fetch:
                return result

            access_token = await self.repository.get_access_token(workspace_id)
            if not access_token:
                raise MetaConnectionError(workspace_id)

            graph = self.graph_factory(access_token)
            resolver = ImageResolutionResolver(graph, ResolutionContext(ad_account_id=account_id))
            orchestrator = BatchOrchestrator(
                graph,
                CreativeRecordAssembler(resolver, self.cache_store, self.policy.max_attempts),
                self.repository,
            )
            fresh = await orchestrator.run(
                decision.to_fetch, account_id, workspace_id, prior=stored, extra_data=extra_data
            )

        result.records.update(fresh.records)
        result.errors.update(fresh.errors)
        result.fetched_count = fresh.fetched_count

        logger.info(
            f"Creatives for workspace {workspace_id}: {result.cached_count} from store, "
            f"{result.fetched_count} fetched, {len(result.errors)} errors"
        )
        return result

    @staticmethod
    def _single(ad_id: str, result: BatchFetchResult) -> CreativeFetchResult:
        record = result.records.get(ad_id)
        if record is None:
            raise CreativeFetchError(ad_id, result.errors.get(ad_id, NO_RESPONSE))
        return CreativeFetchResult(creative=record, cached=result.fetched_count == 0)
