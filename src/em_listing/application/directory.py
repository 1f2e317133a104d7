"""ListingDirectory: read interface over active, in-window listings.

Attaches seller reputation to every candidate and caches whole snapshots in
Redis for a few seconds. Anything read here may be slightly stale; the
settlement path re-reads the listing under its lease.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.em_common.datetime_utils import Clock, utc_now
from src.em_common.redis_client import get_redis
from src.em_listing.domain.models import (
    GeoScope,
    ListingCandidate,
    ListingFilters,
    SellerReputation,
)
from src.em_listing.domain.repository import ListingRepositoryProtocol, ReputationProtocol
from src.em_listing.infrastructure.cache import ListingSnapshotCache, snapshot_key
from src.em_listing.infrastructure.persistence import ListingRepository
from src.em_listing.infrastructure.reputation import SettlementReputationRepository

logger = logging.getLogger(__name__)


class ListingDirectory:
    def __init__(
        self,
        repo: ListingRepositoryProtocol | None = None,
        reputation: ReputationProtocol | None = None,
        cache: ListingSnapshotCache | None = None,
        use_redis: bool = True,
        clock: Clock = utc_now,
    ) -> None:
        self._repo: ListingRepositoryProtocol = repo or ListingRepository()
        self._reputation: ReputationProtocol = reputation or SettlementReputationRepository()
        self._cache = cache
        self._use_redis = use_redis
        self._clock = clock

    async def _snapshot_cache(self) -> ListingSnapshotCache | None:
        if self._cache is None and self._use_redis:
            self._cache = ListingSnapshotCache(
                await get_redis(), settings.LISTING_CACHE_TTL_SECONDS
            )
        return self._cache

    async def find_active_listings(
        self,
        db: AsyncSession,
        filters: ListingFilters,
        scope: GeoScope | None,
    ) -> list[ListingCandidate]:
        cache = await self._snapshot_cache()
        key = snapshot_key(filters, scope)
        if cache is not None:
            cached = await cache.get(key)
            if cached is not None:
                return cached

        candidates = await self._repo.find_active_listings(db, filters, scope, self._clock())
        seller_ids = sorted({c.listing.seller_id for c in candidates})
        reputations = await self._reputation.get_reputations(db, seller_ids)
        for candidate in candidates:
            candidate.reputation = reputations.get(
                candidate.listing.seller_id, SellerReputation()
            )
        logger.debug("Directory loaded %d candidates for %s", len(candidates), key)

        if cache is not None:
            await cache.put(key, candidates)
        return candidates
