"""ListingRepository: concrete implementation of ListingRepositoryProtocol.

All queries use raw text() SQL (no ORM).
asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.

Effective listing location is COALESCE(listing point, seller default address).
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.em_common.errors import InternalError
from src.em_listing.domain.geo import bounding_box
from src.em_listing.domain.models import (
    GeoPoint,
    GeoScope,
    Listing,
    ListingCandidate,
    ListingFilters,
)

_LISTING_COLUMNS = """
    id, seller_id, energy_amount_kwh, price_per_kwh, min_purchase_kwh,
    renewable_cert, available_from, available_to, status, listing_type,
    settlement_mode, location_latitude, location_longitude, description,
    created_at, updated_at
"""

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_GET_LISTING_SQL = text(f"""
    SELECT {_LISTING_COLUMNS}
    FROM energy_listings
    WHERE id = :listing_id
""")

_INSERT_LISTING_SQL = text(f"""
    INSERT INTO energy_listings
        (id, seller_id, energy_amount_kwh, price_per_kwh, min_purchase_kwh,
         renewable_cert, available_from, available_to, status, listing_type,
         settlement_mode, location_latitude, location_longitude, description)
    VALUES
        (:id, :seller_id, :energy_amount_kwh, :price_per_kwh, :min_purchase_kwh,
         :renewable_cert, :available_from, :available_to, :status, :listing_type,
         :settlement_mode, :location_latitude, :location_longitude, :description)
    RETURNING {_LISTING_COLUMNS}
""")

# Atomic: never goes negative, flips to SOLD in the same statement
_DECREMENT_ENERGY_SQL = text(f"""
    UPDATE energy_listings
    SET energy_amount_kwh = energy_amount_kwh - :quantity,
        status = CASE
            WHEN energy_amount_kwh - :quantity <= 0 THEN 'SOLD'
            ELSE status
        END
    WHERE id = :listing_id
      AND status = 'ACTIVE'
      AND energy_amount_kwh >= :quantity
    RETURNING {_LISTING_COLUMNS}
""")

_UPDATE_TERMS_SQL = text(f"""
    UPDATE energy_listings
    SET price_per_kwh = :price_per_kwh,
        energy_amount_kwh = :energy_amount_kwh,
        min_purchase_kwh = :min_purchase_kwh,
        available_from = :available_from,
        available_to = :available_to,
        description = :description
    WHERE id = :listing_id AND status = 'ACTIVE'
    RETURNING {_LISTING_COLUMNS}
""")

_TRANSITION_STATUS_SQL = text(f"""
    UPDATE energy_listings
    SET status = :to_status
    WHERE id = :listing_id AND status = :from_status
    RETURNING {_LISTING_COLUMNS}
""")

_LIST_BY_SELLER_SQL = text(f"""
    SELECT {_LISTING_COLUMNS}
    FROM energy_listings
    WHERE seller_id = :seller_id
      AND (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
    ORDER BY created_at DESC, id DESC
    LIMIT :limit
""")

_FIND_ACTIVE_SQL = text("""
    SELECT l.id, l.seller_id, l.energy_amount_kwh, l.price_per_kwh, l.min_purchase_kwh,
           l.renewable_cert, l.available_from, l.available_to, l.status, l.listing_type,
           l.settlement_mode, l.location_latitude, l.location_longitude, l.description,
           l.created_at, l.updated_at,
           COALESCE(l.location_latitude, ua.latitude) AS effective_latitude,
           COALESCE(l.location_longitude, ua.longitude) AS effective_longitude
    FROM energy_listings l
    LEFT JOIN user_addresses ua ON ua.user_id = l.seller_id AND ua.is_default = TRUE
    WHERE l.status = 'ACTIVE'
      AND l.available_from <= :now
      AND l.available_to > :now
      AND (
        CAST(:min_lat AS DOUBLE PRECISION) IS NULL
        OR (
          COALESCE(l.location_latitude, ua.latitude)
              BETWEEN CAST(:min_lat AS DOUBLE PRECISION) AND CAST(:max_lat AS DOUBLE PRECISION)
          AND COALESCE(l.location_longitude, ua.longitude)
              BETWEEN CAST(:min_lng AS DOUBLE PRECISION) AND CAST(:max_lng AS DOUBLE PRECISION)
        )
      )
      AND (CAST(:min_price AS BIGINT) IS NULL OR l.price_per_kwh >= CAST(:min_price AS BIGINT))
      AND (CAST(:max_price AS BIGINT) IS NULL OR l.price_per_kwh <= CAST(:max_price AS BIGINT))
      AND (CAST(:min_energy AS NUMERIC) IS NULL OR l.energy_amount_kwh >= CAST(:min_energy AS NUMERIC))
      AND (CAST(:max_energy AS NUMERIC) IS NULL OR l.energy_amount_kwh <= CAST(:max_energy AS NUMERIC))
      AND (CAST(:listing_type AS TEXT) IS NULL OR l.listing_type = CAST(:listing_type AS TEXT))
      AND (:renewable_only = FALSE OR l.renewable_cert = TRUE)
    ORDER BY l.id
    LIMIT :limit
""")

_UPSERT_SELLER_LOCATION_SQL = text("""
    INSERT INTO user_addresses (user_id, latitude, longitude, is_default)
    VALUES (:user_id, :latitude, :longitude, TRUE)
    ON CONFLICT (user_id) WHERE is_default = TRUE
    DO UPDATE SET latitude = EXCLUDED.latitude,
                  longitude = EXCLUDED.longitude,
                  updated_at = NOW()
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _to_float(value: object) -> float | None:
    return float(value) if value is not None else None  # type: ignore[arg-type]


def _row_to_listing(row: object) -> Listing:
    return Listing(
        id=row.id,  # type: ignore[attr-defined]
        seller_id=row.seller_id,  # type: ignore[attr-defined]
        energy_amount_kwh=Decimal(row.energy_amount_kwh),  # type: ignore[attr-defined]
        price_per_kwh=row.price_per_kwh,  # type: ignore[attr-defined]
        min_purchase_kwh=Decimal(row.min_purchase_kwh),  # type: ignore[attr-defined]
        renewable_cert=row.renewable_cert,  # type: ignore[attr-defined]
        available_from=row.available_from,  # type: ignore[attr-defined]
        available_to=row.available_to,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        listing_type=row.listing_type,  # type: ignore[attr-defined]
        settlement_mode=row.settlement_mode,  # type: ignore[attr-defined]
        location_latitude=_to_float(row.location_latitude),  # type: ignore[attr-defined]
        location_longitude=_to_float(row.location_longitude),  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_candidate(row: object) -> ListingCandidate:
    return ListingCandidate(
        listing=_row_to_listing(row),
        latitude=_to_float(row.effective_latitude),  # type: ignore[attr-defined]
        longitude=_to_float(row.effective_longitude),  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ListingRepository:
    """Concrete repository. Writes are conditional UPDATEs; nothing here commits."""

    async def get_listing(self, db: AsyncSession, listing_id: str) -> Listing | None:
        result = await db.execute(_GET_LISTING_SQL, {"listing_id": listing_id})
        row = result.fetchone()
        return _row_to_listing(row) if row else None

    async def insert_listing(self, db: AsyncSession, listing: Listing) -> Listing:
        result = await db.execute(
            _INSERT_LISTING_SQL,
            {
                "id": listing.id,
                "seller_id": listing.seller_id,
                "energy_amount_kwh": listing.energy_amount_kwh,
                "price_per_kwh": listing.price_per_kwh,
                "min_purchase_kwh": listing.min_purchase_kwh,
                "renewable_cert": listing.renewable_cert,
                "available_from": listing.available_from,
                "available_to": listing.available_to,
                "status": listing.status,
                "listing_type": listing.listing_type,
                "settlement_mode": listing.settlement_mode,
                "location_latitude": listing.location_latitude,
                "location_longitude": listing.location_longitude,
                "description": listing.description,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Listing insert returned no rows; this should never happen")
        return _row_to_listing(row)

    async def decrement_energy(
        self, db: AsyncSession, listing_id: str, quantity_kwh: Decimal
    ) -> Listing | None:
        result = await db.execute(
            _DECREMENT_ENERGY_SQL, {"listing_id": listing_id, "quantity": quantity_kwh}
        )
        row = result.fetchone()
        return _row_to_listing(row) if row else None

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
    ) -> Listing | None:
        result = await db.execute(
            _UPDATE_TERMS_SQL,
            {
                "listing_id": listing_id,
                "price_per_kwh": price_per_kwh,
                "energy_amount_kwh": energy_amount_kwh,
                "min_purchase_kwh": min_purchase_kwh,
                "available_from": available_from,
                "available_to": available_to,
                "description": description,
            },
        )
        row = result.fetchone()
        return _row_to_listing(row) if row else None

    async def transition_status(
        self, db: AsyncSession, listing_id: str, from_status: str, to_status: str
    ) -> Listing | None:
        result = await db.execute(
            _TRANSITION_STATUS_SQL,
            {"listing_id": listing_id, "from_status": from_status, "to_status": to_status},
        )
        row = result.fetchone()
        return _row_to_listing(row) if row else None

    async def list_by_seller(
        self, db: AsyncSession, seller_id: str, status: str | None, limit: int
    ) -> list[Listing]:
        result = await db.execute(
            _LIST_BY_SELLER_SQL, {"seller_id": seller_id, "status": status, "limit": limit}
        )
        return [_row_to_listing(row) for row in result.fetchall()]

    async def find_active_listings(
        self,
        db: AsyncSession,
        filters: ListingFilters,
        scope: GeoScope | None,
        now: datetime,
    ) -> list[ListingCandidate]:
        min_lat = max_lat = min_lng = max_lng = None
        if scope is not None:
            min_lat, max_lat, min_lng, max_lng = bounding_box(scope.center, scope.radius_km)

        result = await db.execute(
            _FIND_ACTIVE_SQL,
            {
                "now": now,
                "min_lat": min_lat,
                "max_lat": max_lat,
                "min_lng": min_lng,
                "max_lng": max_lng,
                "min_price": filters.min_price,
                "max_price": filters.max_price,
                "min_energy": filters.min_energy_kwh,
                "max_energy": filters.max_energy_kwh,
                "listing_type": filters.listing_type,
                "renewable_only": filters.renewable_only,
                "limit": filters.limit,
            },
        )
        return [_row_to_candidate(row) for row in result.fetchall()]

    async def set_seller_location(
        self, db: AsyncSession, seller_id: str, point: GeoPoint
    ) -> None:
        await db.execute(
            _UPSERT_SELLER_LOCATION_SQL,
            {"user_id": seller_id, "latitude": point.latitude, "longitude": point.longitude},
        )
