"""Pydantic schemas for em_matching API."""

from decimal import Decimal

from pydantic import BaseModel, Field

from src.em_common.money import paise_to_display
from src.em_matching.domain.models import AllocationPlan, RankedListing


class PreferencesBody(BaseModel):
    max_distance_km: float = Field(100.0, gt=0, le=1000)
    max_price: int | None = Field(None, gt=0, description="Paise per kWh")
    prefer_renewable: bool = True
    min_seller_rating: float = Field(0.0, ge=0, le=5)


class RankRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    preferences: PreferencesBody = Field(default_factory=PreferencesBody)
    limit: int = Field(20, ge=1, le=200)


class AllocationRequest(BaseModel):
    energy_needed_kwh: Decimal = Field(..., gt=0, max_digits=12, decimal_places=4)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    preferences: PreferencesBody = Field(default_factory=PreferencesBody)
    max_sellers: int | None = Field(None, ge=1, le=50)


class ScoreFactors(BaseModel):
    distance: float
    price: float
    rating: float
    reliability: float
    renewable: float


class RankedListingItem(BaseModel):
    listing_id: str
    seller_id: str
    energy_amount_kwh: str
    min_purchase_kwh: str
    price_per_kwh: int
    renewable_cert: bool
    distance_km: float
    score: float
    factors: ScoreFactors

    @classmethod
    def from_domain(cls, ranked: RankedListing) -> "RankedListingItem":
        listing = ranked.candidate.listing
        return cls(
            listing_id=listing.id,
            seller_id=listing.seller_id,
            energy_amount_kwh=str(listing.energy_amount_kwh),
            min_purchase_kwh=str(listing.min_purchase_kwh),
            price_per_kwh=listing.price_per_kwh,
            renewable_cert=listing.renewable_cert,
            distance_km=ranked.distance_km,
            score=ranked.score.total,
            factors=ScoreFactors(
                distance=ranked.score.distance,
                price=ranked.score.price,
                rating=ranked.score.rating,
                reliability=ranked.score.reliability,
                renewable=ranked.score.renewable,
            ),
        )


class AllocationLegItem(BaseModel):
    listing_id: str
    seller_id: str
    energy_kwh: str
    price_per_kwh: int
    subtotal_paise: int
    subtotal_display: str
    score: float
    distance_km: float
    renewable_cert: bool
    settlement_mode: str


class AllocationSummaryItem(BaseModel):
    allocated_energy_kwh: str
    total_cost_paise: int
    total_cost_display: str
    platform_fee_paise: int
    platform_fee_display: str
    grand_total_paise: int
    grand_total_display: str
    average_price_per_kwh: int
    seller_count: int
    average_distance_km: float


class AllocationPlanResponse(BaseModel):
    success: bool
    requested_energy_kwh: str
    remaining_energy_kwh: str
    legs: list[AllocationLegItem]
    summary: AllocationSummaryItem

    @classmethod
    def from_domain(cls, plan: AllocationPlan) -> "AllocationPlanResponse":
        s = plan.summary
        return cls(
            success=plan.success,
            requested_energy_kwh=str(plan.requested_energy_kwh),
            remaining_energy_kwh=str(plan.remaining_energy_kwh),
            legs=[
                AllocationLegItem(
                    listing_id=leg.listing_id,
                    seller_id=leg.seller_id,
                    energy_kwh=str(leg.energy_kwh),
                    price_per_kwh=leg.price_per_kwh,
                    subtotal_paise=leg.subtotal,
                    subtotal_display=paise_to_display(leg.subtotal),
                    score=leg.score,
                    distance_km=leg.distance_km,
                    renewable_cert=leg.renewable_cert,
                    settlement_mode=leg.settlement_mode,
                )
                for leg in plan.legs
            ],
            summary=AllocationSummaryItem(
                allocated_energy_kwh=str(s.allocated_energy_kwh),
                total_cost_paise=s.total_cost,
                total_cost_display=paise_to_display(s.total_cost),
                platform_fee_paise=s.platform_fee,
                platform_fee_display=paise_to_display(s.platform_fee),
                grand_total_paise=s.grand_total,
                grand_total_display=paise_to_display(s.grand_total),
                average_price_per_kwh=s.average_price_per_kwh,
                seller_count=s.seller_count,
                average_distance_km=s.average_distance_km,
            ),
        )
