"""Domain models for em_listing: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from src.em_common.enums import ListingStatus

# One-way lifecycle: nothing leaves a terminal state
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    ListingStatus.ACTIVE.value: frozenset(
        {
            ListingStatus.SOLD.value,
            ListingStatus.EXPIRED.value,
            ListingStatus.CANCELLED.value,
        }
    ),
    ListingStatus.SOLD.value: frozenset(),
    ListingStatus.EXPIRED.value: frozenset(),
    ListingStatus.CANCELLED.value: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


@dataclass
class GeoPoint:
    latitude: float
    longitude: float


@dataclass
class Listing:
    id: str
    seller_id: str
    energy_amount_kwh: Decimal       # remaining, NUMERIC(12,4)
    price_per_kwh: int               # paise per kWh
    min_purchase_kwh: Decimal
    renewable_cert: bool
    available_from: datetime
    available_to: datetime           # exclusive
    status: str                      # ListingStatus value
    listing_type: str                # ListingType value
    settlement_mode: str             # SettlementMode value
    location_latitude: float | None = None
    location_longitude: float | None = None
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_open_at(self, now: datetime) -> bool:
        return self.available_from <= now < self.available_to


@dataclass
class SellerReputation:
    """Aggregated from settlement history. Neutral defaults when unrated."""

    avg_rating: float = 3.0
    completed: int = 0
    cancelled: int = 0


@dataclass
class ListingCandidate:
    """A listing as seen by the read side.

    latitude/longitude are the effective point: the listing's own location,
    falling back to the seller's default address. Both None when neither
    is known.
    """

    listing: Listing
    latitude: float | None
    longitude: float | None
    reputation: SellerReputation = field(default_factory=SellerReputation)


@dataclass
class ListingFilters:
    min_price: int | None = None
    max_price: int | None = None
    min_energy_kwh: Decimal | None = None
    max_energy_kwh: Decimal | None = None
    listing_type: str | None = None
    renewable_only: bool = False
    limit: int = 50


@dataclass
class GeoScope:
    center: GeoPoint
    radius_km: float
