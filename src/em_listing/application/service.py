"""ListingService: seller lifecycle operations and nearby search.

Edits and cancellation run under the same listing lease as settlement, so a
seller can never race a purchase on the same listing. The transaction is
finished (commit or rollback) before the lease is released.
"""

import dataclasses
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.em_common.datetime_utils import Clock, utc_now
from src.em_common.enums import ListingStatus, SortBy
from src.em_common.errors import (
    ListingNotEditableError,
    ListingNotFoundError,
    ListingNotOwnedError,
)
from src.em_common.money import normalize_energy
from src.em_listing.application.directory import ListingDirectory
from src.em_listing.application.schemas import (
    CreateListingRequest,
    ListingResponse,
    NearbyListingItem,
    NearbyListingsResponse,
    UpdateListingRequest,
)
from src.em_listing.domain.geo import locate_candidates
from src.em_listing.domain.lease import ListingLeaseProtocol
from src.em_listing.domain.models import (
    GeoPoint,
    GeoScope,
    Listing,
    ListingFilters,
    can_transition,
)
from src.em_listing.domain.repository import ListingRepositoryProtocol
from src.em_listing.infrastructure.lease import get_listing_lease
from src.em_listing.infrastructure.persistence import ListingRepository

logger = logging.getLogger(__name__)


class ListingService:
    def __init__(
        self,
        repo: ListingRepositoryProtocol | None = None,
        lease: ListingLeaseProtocol | None = None,
        directory: ListingDirectory | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._repo: ListingRepositoryProtocol = repo or ListingRepository()
        self._lease: ListingLeaseProtocol = lease or get_listing_lease()
        self._directory = directory or ListingDirectory(repo=self._repo, clock=clock)
        self._clock = clock

    async def create_listing(
        self, db: AsyncSession, seller_id: str, body: CreateListingRequest
    ) -> ListingResponse:
        listing = Listing(
            id=str(uuid.uuid4()),
            seller_id=seller_id,
            energy_amount_kwh=normalize_energy(body.energy_amount_kwh),
            price_per_kwh=body.price_per_kwh,
            min_purchase_kwh=normalize_energy(body.min_purchase_kwh),
            renewable_cert=body.renewable_cert,
            available_from=body.available_from or self._clock(),
            available_to=body.available_to,
            status=ListingStatus.ACTIVE.value,
            listing_type=body.listing_type.value,
            settlement_mode=body.settlement_mode.value,
            location_latitude=body.latitude,
            location_longitude=body.longitude,
            description=body.description,
        )
        if listing.available_to <= listing.available_from:
            raise ListingNotEditableError("available_to must be after available_from")
        try:
            created = await self._repo.insert_listing(db, listing)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Listing %s created by %s: %s kWh @ %d paise",
            created.id,
            seller_id,
            created.energy_amount_kwh,
            created.price_per_kwh,
        )
        return ListingResponse.from_domain(created)

    async def get_listing(self, db: AsyncSession, listing_id: str) -> ListingResponse:
        listing = await self._repo.get_listing(db, listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return ListingResponse.from_domain(listing)

    async def list_seller_listings(
        self, db: AsyncSession, seller_id: str, status: str | None, limit: int
    ) -> list[ListingResponse]:
        listings = await self._repo.list_by_seller(db, seller_id, status, limit)
        return [ListingResponse.from_domain(listing) for listing in listings]

    async def _owned_active_listing(
        self, db: AsyncSession, caller_id: str, listing_id: str
    ) -> Listing:
        listing = await self._repo.get_listing(db, listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        if listing.seller_id != caller_id:
            raise ListingNotOwnedError(listing_id)
        if listing.status != ListingStatus.ACTIVE.value:
            raise ListingNotEditableError(f"listing is {listing.status}")
        return listing

    async def update_listing(
        self,
        db: AsyncSession,
        caller_id: str,
        listing_id: str,
        body: UpdateListingRequest,
    ) -> ListingResponse:
        async with self._lease.hold(db, listing_id):
            try:
                current = await self._owned_active_listing(db, caller_id, listing_id)

                energy = current.energy_amount_kwh
                if body.energy_amount_kwh is not None:
                    energy = normalize_energy(body.energy_amount_kwh)
                    if energy > current.energy_amount_kwh:
                        raise ListingNotEditableError("energy amount may only decrease")
                min_purchase = (
                    normalize_energy(body.min_purchase_kwh)
                    if body.min_purchase_kwh is not None
                    else current.min_purchase_kwh
                )
                available_from = body.available_from or current.available_from
                available_to = body.available_to or current.available_to
                if available_to <= available_from:
                    raise ListingNotEditableError("available_to must be after available_from")

                updated = await self._repo.update_terms(
                    db,
                    listing_id,
                    price_per_kwh=body.price_per_kwh or current.price_per_kwh,
                    energy_amount_kwh=energy,
                    min_purchase_kwh=min_purchase,
                    available_from=available_from,
                    available_to=available_to,
                    description=(
                        body.description if body.description is not None else current.description
                    ),
                )
                if updated is None:
                    raise ListingNotEditableError("listing is no longer ACTIVE")
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.info("Listing %s updated by %s", listing_id, caller_id)
        return ListingResponse.from_domain(updated)

    async def cancel_listing(
        self, db: AsyncSession, caller_id: str, listing_id: str
    ) -> ListingResponse:
        async with self._lease.hold(db, listing_id):
            try:
                current = await self._owned_active_listing(db, caller_id, listing_id)
                if not can_transition(current.status, ListingStatus.CANCELLED.value):
                    raise ListingNotEditableError(f"cannot cancel a {current.status} listing")
                cancelled = await self._repo.transition_status(
                    db,
                    listing_id,
                    ListingStatus.ACTIVE.value,
                    ListingStatus.CANCELLED.value,
                )
                if cancelled is None:
                    raise ListingNotEditableError("listing is no longer ACTIVE")
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.info("Listing %s cancelled by %s", listing_id, caller_id)
        return ListingResponse.from_domain(cancelled)

    async def set_seller_location(
        self, db: AsyncSession, seller_id: str, point: GeoPoint
    ) -> None:
        try:
            await self._repo.set_seller_location(db, seller_id, point)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    async def search_nearby(
        self,
        db: AsyncSession,
        center: GeoPoint,
        radius_km: float,
        filters: ListingFilters,
        sort_by: SortBy = SortBy.DISTANCE,
    ) -> NearbyListingsResponse:
        # Load the whole area; sort and page here
        wide = dataclasses.replace(filters, limit=max(filters.limit, settings.MAX_CANDIDATES))
        candidates = await self._directory.find_active_listings(
            db, wide, GeoScope(center=center, radius_km=radius_km)
        )
        located = locate_candidates(center, radius_km, candidates, sort_by)[: filters.limit]
        items = [
            NearbyListingItem(
                listing=ListingResponse.from_domain(candidate.listing),
                distance_km=round(distance, 2),
                seller_avg_rating=round(candidate.reputation.avg_rating, 2),
                seller_completed_sales=candidate.reputation.completed,
            )
            for candidate, distance in located
        ]
        return NearbyListingsResponse(items=items, total=len(items))
