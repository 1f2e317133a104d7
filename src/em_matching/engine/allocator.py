"""Greedy allocator: assemble a fulfillment plan from ranked listings.

Walks the ranking once, never backtracks. A listing contributes
min(remaining, available) only when that amount meets its own minimum
purchase. A plan that falls short is a valid outcome (success=False).
"""

from decimal import ROUND_HALF_UP, Decimal

from config.settings import settings
from src.em_common.enums import SettlementMode
from src.em_common.money import calculate_fee, energy_value, normalize_energy
from src.em_matching.domain.models import (
    AllocationLeg,
    AllocationPlan,
    AllocationSummary,
    RankedListing,
)

_ZERO = Decimal("0")


def plan_allocation(
    buyer_id: str,
    energy_needed: Decimal,
    ranked: list[RankedListing],
    max_sellers: int | None = None,
    buyer_fee_bps: int | None = None,
) -> AllocationPlan:
    requested = normalize_energy(energy_needed)
    remaining = requested
    legs: list[AllocationLeg] = []

    for item in ranked:
        if remaining <= 0:
            break
        if max_sellers is not None and len(legs) >= max_sellers:
            break

        listing = item.candidate.listing
        available = listing.energy_amount_kwh
        minimum = listing.min_purchase_kwh
        if available < minimum:
            continue

        take = min(remaining, available)
        if take < minimum:
            continue

        legs.append(
            AllocationLeg(
                listing_id=listing.id,
                seller_id=listing.seller_id,
                buyer_id=buyer_id,
                energy_kwh=take,
                price_per_kwh=listing.price_per_kwh,
                subtotal=energy_value(take, listing.price_per_kwh),
                score=item.score.total,
                distance_km=item.distance_km,
                renewable_cert=listing.renewable_cert,
                settlement_mode=listing.settlement_mode,
            )
        )
        remaining -= take

    return AllocationPlan(
        buyer_id=buyer_id,
        requested_energy_kwh=requested,
        success=remaining <= 0,
        remaining_energy_kwh=max(_ZERO, remaining),
        summary=summarize(legs, buyer_fee_bps),
        legs=legs,
    )


def summarize(legs: list[AllocationLeg], buyer_fee_bps: int | None = None) -> AllocationSummary:
    """Totals for a plan. Only DIRECT legs carry a buyer-side fee."""
    fee_bps = settings.DIRECT_BUYER_FEE_BPS if buyer_fee_bps is None else buyer_fee_bps
    allocated = sum((leg.energy_kwh for leg in legs), _ZERO)
    total_cost = sum(leg.subtotal for leg in legs)
    platform_fee = sum(
        calculate_fee(leg.subtotal, fee_bps)
        for leg in legs
        if leg.settlement_mode == SettlementMode.DIRECT.value
    )

    average_price = 0
    average_distance = 0.0
    if legs:
        average_price = int(
            (Decimal(total_cost) / allocated).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        )
        average_distance = round(sum(leg.distance_km for leg in legs) / len(legs), 2)

    return AllocationSummary(
        allocated_energy_kwh=allocated,
        total_cost=total_cost,
        platform_fee=platform_fee,
        grand_total=total_cost + platform_fee,
        average_price_per_kwh=average_price,
        seller_count=len({leg.seller_id for leg in legs}),
        average_distance_km=average_distance,
    )
