"""Repository Protocols: dependency inversion for testability.

Unit tests inject fakes that conform to these Protocols.
Infrastructure layer provides the real implementations.
"""

from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.em_listing.domain.models import (
    GeoPoint,
    GeoScope,
    Listing,
    ListingCandidate,
    ListingFilters,
    SellerReputation,
)


class ListingRepositoryProtocol(Protocol):
    async def get_listing(self, db: AsyncSession, listing_id: str) -> Listing | None: ...

    async def insert_listing(self, db: AsyncSession, listing: Listing) -> Listing: ...

    async def decrement_energy(
        self, db: AsyncSession, listing_id: str, quantity_kwh: Decimal
    ) -> Listing | None:
        """Subtract quantity from an ACTIVE listing, flipping to SOLD at zero.

        Returns None when the listing is not ACTIVE or holds less than quantity.
        """
        ...

    async def update_terms(
        self,
        db: AsyncSession,
        listing_id: str,
        price_per_kwh: int,
        energy_amount_kwh: Decimal,
        min_purchase_kwh: Decimal,
        available_from: datetime,
        available_to: datetime,
        description: str | None,
    ) -> Listing | None: ...

    async def transition_status(
        self, db: AsyncSession, listing_id: str, from_status: str, to_status: str
    ) -> Listing | None: ...

    async def list_by_seller(
        self, db: AsyncSession, seller_id: str, status: str | None, limit: int
    ) -> list[Listing]: ...

    async def find_active_listings(
        self,
        db: AsyncSession,
        filters: ListingFilters,
        scope: GeoScope | None,
        now: datetime,
    ) -> list[ListingCandidate]: ...

    async def set_seller_location(
        self, db: AsyncSession, seller_id: str, point: GeoPoint
    ) -> None: ...


class ReputationProtocol(Protocol):
    async def get_reputations(
        self, db: AsyncSession, seller_ids: list[str]
    ) -> dict[str, SellerReputation]:
        """Missing sellers are simply absent; callers apply the neutral default."""
        ...
