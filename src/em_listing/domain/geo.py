"""Geo filter: bounding-box pre-filter and planar distance.

Distances use a fixed 111 km per degree on both axes. This is a flat-earth
approximation and over-estimates east-west distance away from the equator;
ranking and radius checks rely on it exactly as is.
"""

import math

from src.em_common.enums import SortBy
from src.em_listing.domain.models import GeoPoint, ListingCandidate

KM_PER_DEGREE = 111.0


def km_to_degrees(km: float) -> float:
    return km / KM_PER_DEGREE


def bounding_box(center: GeoPoint, radius_km: float) -> tuple[float, float, float, float]:
    """Return (min_lat, max_lat, min_lng, max_lng) for a square around center."""
    delta = km_to_degrees(radius_km)
    return (
        center.latitude - delta,
        center.latitude + delta,
        center.longitude - delta,
        center.longitude + delta,
    )


def in_bounding_box(center: GeoPoint, radius_km: float, lat: float, lng: float) -> bool:
    delta = km_to_degrees(radius_km)
    return abs(lat - center.latitude) <= delta and abs(lng - center.longitude) <= delta


def planar_distance_km(center: GeoPoint, lat: float, lng: float) -> float:
    return math.sqrt((lat - center.latitude) ** 2 + (lng - center.longitude) ** 2) * KM_PER_DEGREE


def locate_candidates(
    center: GeoPoint,
    radius_km: float,
    candidates: list[ListingCandidate],
    sort_by: SortBy = SortBy.DISTANCE,
) -> list[tuple[ListingCandidate, float]]:
    """Keep candidates inside the bounding box of radius_km, annotated with distance.

    The box is square, so corner candidates may lie slightly beyond
    radius_km; callers needing a strict circle compare the distance.
    Candidates without coordinates are dropped, never treated as (0, 0).
    Default order is distance ascending; ties broken by listing id.
    """
    located: list[tuple[ListingCandidate, float]] = []
    for candidate in candidates:
        if candidate.latitude is None or candidate.longitude is None:
            continue
        if not in_bounding_box(center, radius_km, candidate.latitude, candidate.longitude):
            continue
        distance = planar_distance_km(center, candidate.latitude, candidate.longitude)
        located.append((candidate, distance))

    if sort_by == SortBy.PRICE:
        located.sort(key=lambda item: (item[0].listing.price_per_kwh, item[1], item[0].listing.id))
    elif sort_by == SortBy.RATING:
        located.sort(key=lambda item: (-item[0].reputation.avg_rating, item[1], item[0].listing.id))
    else:
        located.sort(key=lambda item: (item[1], item[0].listing.id))
    return located
