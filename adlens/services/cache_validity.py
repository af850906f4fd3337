"""
CacheValidityPolicy - decide which stored creatives can be served as-is.

Three outcomes per requested ad:
- served: stored record is final, no upstream call
- provisional: stored record is returned now AND queued for an upgrade
- to_fetch: everything that needs an upstream call (includes provisional)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.config import Config
from .creative_quality import is_low_resolution_url
from .models import CreativeRecord, FetchStatus, ImageQuality

logger = logging.getLogger(__name__)


@dataclass
class CacheDecision:
    served: Dict[str, CreativeRecord] = field(default_factory=dict)
    provisional: Dict[str, CreativeRecord] = field(default_factory=dict)
    to_fetch: List[str] = field(default_factory=list)


class CacheValidityPolicy:
    """Partitions requested ads into serve-from-store and must-fetch."""

    def __init__(self, max_attempts: Optional[int] = None):
        self.max_attempts = max_attempts or Config.CREATIVE_MAX_FETCH_ATTEMPTS

    def is_low_quality(self, record: CreativeRecord) -> bool:
        if record.thumbnail_quality == ImageQuality.LOW and record.image_url:
            return True
        return is_low_resolution_url(record.image_url)

    def is_final(self, record: CreativeRecord) -> bool:
        """True when the stored record should not be re-fetched."""
        exhausted = record.fetch_attempts >= self.max_attempts

        if record.has_usable_data:
            needs_upgrade = self.is_low_quality(record) and not record.cached_image_url
            # Past the ceiling a low-quality record is kept as the final answer
            return not needs_upgrade or exhausted

        return exhausted and record.fetch_status == FetchStatus.FAILED

    def partition(
        self,
        ad_ids: List[str],
        stored: Dict[str, CreativeRecord],
        force_refresh: bool = False,
    ) -> CacheDecision:
        """
        Split requested ads by what the store already holds.

        Args:
            ad_ids: Requested ad IDs (deduplicated, in request order)
            stored: Stored records keyed by ad ID
            force_refresh: Queue every ad, keeping usable records as provisional

        Returns:
            CacheDecision
        """
        decision = CacheDecision()

        for ad_id in ad_ids:
            record = stored.get(ad_id)
            if record is None:
                decision.to_fetch.append(ad_id)
                continue

            if not force_refresh and self.is_final(record):
                decision.served[ad_id] = record
                continue

            if record.has_usable_data:
                decision.provisional[ad_id] = record
            decision.to_fetch.append(ad_id)

        logger.info(
            f"Creative cache check: {len(ad_ids)} requested, {len(decision.served)} served, "
            f"{len(decision.provisional)} provisional, {len(decision.to_fetch)} to fetch"
        )
        return decision
