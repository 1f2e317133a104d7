"""MatchingService: directory → score_and_rank → plan_allocation.

Read-only: works on a possibly cached snapshot. Executing the plan is the
caller's job, one settle() per leg.
"""

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.em_listing.application.directory import ListingDirectory
from src.em_listing.domain.models import GeoPoint, GeoScope, ListingFilters
from src.em_matching.domain.models import AllocationPlan, BuyerPreferences, RankedListing
from src.em_matching.engine.allocator import plan_allocation
from src.em_matching.engine.scoring import score_and_rank

logger = logging.getLogger(__name__)


class MatchingService:
    def __init__(self, directory: ListingDirectory | None = None) -> None:
        self._directory = directory or ListingDirectory()

    async def rank_listings(
        self,
        db: AsyncSession,
        buyer_id: str,
        location: GeoPoint,
        preferences: BuyerPreferences,
    ) -> list[RankedListing]:
        filters = ListingFilters(max_price=preferences.max_price, limit=settings.MAX_CANDIDATES)
        scope = GeoScope(center=location, radius_km=preferences.max_distance_km)
        candidates = await self._directory.find_active_listings(db, filters, scope)
        return score_and_rank(location, preferences, candidates, buyer_id=buyer_id)

    async def find_optimal_allocation(
        self,
        db: AsyncSession,
        buyer_id: str,
        energy_needed: Decimal,
        location: GeoPoint,
        preferences: BuyerPreferences,
        max_sellers: int | None = None,
    ) -> AllocationPlan:
        ranked = await self.rank_listings(db, buyer_id, location, preferences)
        plan = plan_allocation(buyer_id, energy_needed, ranked, max_sellers=max_sellers)
        logger.info(
            "Allocation for %s: requested=%s allocated=%s legs=%d success=%s",
            buyer_id,
            plan.requested_energy_kwh,
            plan.summary.allocated_energy_kwh,
            len(plan.legs),
            plan.success,
        )
        return plan
