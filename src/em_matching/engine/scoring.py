"""Scoring engine: deterministic five-factor composite score.

    distance     25 × max(0, 1 − d / max_distance)
    price        30 × clamp(1 − (price / mean − 0.5), 0, 1)
    rating       20 × rating / 5         (rating clamped to [0, 5])
    reliability  15 × completed / (completed + cancelled), 7.5 with no history
    renewable    10 if certified and preferred, else 0

The candidate-set mean price is an explicit input and is computed by
score_and_rank over the eligible candidates only.
"""

from src.em_listing.domain.geo import planar_distance_km
from src.em_listing.domain.models import GeoPoint, ListingCandidate
from src.em_matching.domain.models import BuyerPreferences, RankedListing, ScoreBreakdown

DISTANCE_WEIGHT = 25.0
PRICE_WEIGHT = 30.0
RATING_WEIGHT = 20.0
RELIABILITY_WEIGHT = 15.0
RENEWABLE_BONUS = 10.0

NO_HISTORY_RELIABILITY = 0.5
MAX_RATING = 5.0


def _distance_points(distance_km: float, max_distance_km: float) -> float:
    if max_distance_km <= 0:
        return 0.0
    return DISTANCE_WEIGHT * max(0.0, 1 - distance_km / max_distance_km)


def _price_points(price: int, mean_price: float) -> float:
    if mean_price <= 0:
        return PRICE_WEIGHT
    factor = 1 - (price / mean_price - 0.5)
    return PRICE_WEIGHT * min(1.0, max(0.0, factor))


def _rating_points(avg_rating: float) -> float:
    return RATING_WEIGHT * min(MAX_RATING, max(0.0, avg_rating)) / MAX_RATING


def _reliability_points(completed: int, cancelled: int) -> float:
    total = completed + cancelled
    rate = completed / total if total > 0 else NO_HISTORY_RELIABILITY
    return RELIABILITY_WEIGHT * rate


def score_listing(
    candidate: ListingCandidate,
    distance_km: float,
    preferences: BuyerPreferences,
    candidate_set_mean_price: float,
) -> ScoreBreakdown:
    listing = candidate.listing
    reputation = candidate.reputation

    distance = _distance_points(distance_km, preferences.max_distance_km)
    price = _price_points(listing.price_per_kwh, candidate_set_mean_price)
    rating = _rating_points(reputation.avg_rating)
    reliability = _reliability_points(reputation.completed, reputation.cancelled)
    renewable = RENEWABLE_BONUS if listing.renewable_cert and preferences.prefer_renewable else 0.0

    return ScoreBreakdown(
        distance=round(distance, 2),
        price=round(price, 2),
        rating=round(rating, 2),
        reliability=round(reliability, 2),
        renewable=renewable,
        total=round(distance + price + rating + reliability + renewable, 2),
    )


def _is_eligible(
    candidate: ListingCandidate,
    distance_km: float,
    preferences: BuyerPreferences,
    buyer_id: str | None,
) -> bool:
    listing = candidate.listing
    if buyer_id is not None and listing.seller_id == buyer_id:
        return False
    if distance_km > preferences.max_distance_km:
        return False
    if preferences.max_price is not None and listing.price_per_kwh > preferences.max_price:
        return False
    return candidate.reputation.avg_rating >= preferences.min_seller_rating


def score_and_rank(
    buyer_location: GeoPoint,
    preferences: BuyerPreferences,
    candidates: list[ListingCandidate],
    buyer_id: str | None = None,
) -> list[RankedListing]:
    """Filter, score and order candidates.

    Order: total score desc, distance asc, price asc, listing id asc.
    Candidates without a location never rank.
    """
    eligible: list[tuple[ListingCandidate, float]] = []
    for candidate in candidates:
        if candidate.latitude is None or candidate.longitude is None:
            continue
        distance = planar_distance_km(buyer_location, candidate.latitude, candidate.longitude)
        if _is_eligible(candidate, distance, preferences, buyer_id):
            eligible.append((candidate, distance))

    if not eligible:
        return []

    mean_price = sum(c.listing.price_per_kwh for c, _ in eligible) / len(eligible)
    ranked = [
        RankedListing(
            candidate=candidate,
            distance_km=round(distance, 2),
            score=score_listing(candidate, distance, preferences, mean_price),
        )
        for candidate, distance in eligible
    ]
    ranked.sort(
        key=lambda r: (
            -r.score.total,
            r.distance_km,
            r.candidate.listing.price_per_kwh,
            r.candidate.listing.id,
        )
    )
    return ranked
