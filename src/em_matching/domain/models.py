"""Domain models for em_matching: ranking results and allocation plans."""

from dataclasses import dataclass, field
from decimal import Decimal

from src.em_listing.domain.models import ListingCandidate


@dataclass
class BuyerPreferences:
    max_distance_km: float = 100.0
    max_price: int | None = None          # paise per kWh
    prefer_renewable: bool = True
    min_seller_rating: float = 0.0


@dataclass
class ScoreBreakdown:
    """Per-factor points, each rounded to 2 decimals. Bands: 25/30/20/15/10."""

    distance: float
    price: float
    rating: float
    reliability: float
    renewable: float
    total: float


@dataclass
class RankedListing:
    candidate: ListingCandidate
    distance_km: float
    score: ScoreBreakdown


@dataclass
class AllocationLeg:
    listing_id: str
    seller_id: str
    buyer_id: str
    energy_kwh: Decimal
    price_per_kwh: int
    subtotal: int                # paise
    score: float
    distance_km: float
    renewable_cert: bool
    settlement_mode: str


@dataclass
class AllocationSummary:
    allocated_energy_kwh: Decimal
    total_cost: int              # Σ subtotal, paise
    platform_fee: int            # buyer-side fees, paise
    grand_total: int
    average_price_per_kwh: int   # paise, 0 when nothing allocated
    seller_count: int
    average_distance_km: float


@dataclass
class AllocationPlan:
    buyer_id: str
    requested_energy_kwh: Decimal
    success: bool
    remaining_energy_kwh: Decimal
    summary: AllocationSummary
    legs: list[AllocationLeg] = field(default_factory=list)
