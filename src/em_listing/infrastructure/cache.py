"""Listing snapshot cache: Redis cache-aside for the read side.

Key: "listings:active:{lat}:{lng}:{radius}:{filters}" with a short TTL
(settings.LISTING_CACHE_TTL_SECONDS). Any Redis failure is logged at
WARNING and treated as a miss; the directory then reads PostgreSQL.

Settlement never reads from here.
"""

import hashlib
import logging

import redis.asyncio as aioredis
from pydantic import TypeAdapter, ValidationError
from redis.exceptions import RedisError

from src.em_listing.domain.models import GeoScope, ListingCandidate, ListingFilters

logger = logging.getLogger(__name__)

_SNAPSHOT_ADAPTER = TypeAdapter(list[ListingCandidate])


def snapshot_key(filters: ListingFilters, scope: GeoScope | None) -> str:
    if scope is None:
        geo_part = "any"
    else:
        geo_part = (
            f"{scope.center.latitude:.4f}:{scope.center.longitude:.4f}:{scope.radius_km:g}"
        )
    filter_part = hashlib.sha1(
        repr(
            (
                filters.min_price,
                filters.max_price,
                filters.min_energy_kwh,
                filters.max_energy_kwh,
                filters.listing_type,
                filters.renewable_only,
                filters.limit,
            )
        ).encode()
    ).hexdigest()[:16]
    return f"listings:active:{geo_part}:{filter_part}"


class ListingSnapshotCache:
    def __init__(self, redis: aioredis.Redis, ttl_seconds: int) -> None:
        self._redis = redis
        self._ttl = ttl_seconds

    async def get(self, key: str) -> list[ListingCandidate] | None:
        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            logger.warning("Listing cache read failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return _SNAPSHOT_ADAPTER.validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable listing snapshot %s", key)
            return None

    async def put(self, key: str, candidates: list[ListingCandidate]) -> None:
        try:
            await self._redis.set(key, _SNAPSHOT_ADAPTER.dump_json(candidates), ex=self._ttl)
        except RedisError as exc:
            logger.warning("Listing cache write failed for %s: %s", key, exc)
