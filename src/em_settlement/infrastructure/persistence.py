"""SettlementRepository and InvestorRepository: raw text() SQL.

Settlement records are append-only apart from two conditional updates:
COMPLETED → REFUNDED and setting the buyer rating once.
asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.
"""

import json
from datetime import datetime
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.em_common.errors import DuplicateSettlementError, InternalError
from src.em_settlement.domain.models import (
    InvestorAllocation,
    InvestorShare,
    SettlementRecord,
)

IDEMPOTENCY_INDEX = "uq_settlements_buyer_idempotency"

_SETTLEMENT_COLUMNS = """
    id, kind, buyer_id, seller_id, listing_id, energy_kwh, price_per_kwh,
    subtotal, buyer_fee, seller_fee, platform_fee, total_amount, seller_credit,
    settlement_mode, status, idempotency_key, original_settlement_id, reason,
    rating, investor_shares, created_at, updated_at
"""

# ---------------------------------------------------------------------------
# SQL: energy_settlements
# ---------------------------------------------------------------------------

_INSERT_SETTLEMENT_SQL = text(f"""
    INSERT INTO energy_settlements
        (id, kind, buyer_id, seller_id, listing_id, energy_kwh, price_per_kwh,
         subtotal, buyer_fee, seller_fee, platform_fee, total_amount, seller_credit,
         settlement_mode, status, idempotency_key, original_settlement_id, reason,
         investor_shares)
    VALUES
        (:id, :kind, :buyer_id, :seller_id, :listing_id, :energy_kwh, :price_per_kwh,
         :subtotal, :buyer_fee, :seller_fee, :platform_fee, :total_amount, :seller_credit,
         :settlement_mode, :status, :idempotency_key, :original_settlement_id, :reason,
         CAST(:investor_shares AS JSONB))
    RETURNING {_SETTLEMENT_COLUMNS}
""")

_GET_SETTLEMENT_SQL = text(f"""
    SELECT {_SETTLEMENT_COLUMNS}
    FROM energy_settlements
    WHERE id = :settlement_id
""")

_GET_SETTLEMENT_FOR_UPDATE_SQL = text(f"""
    SELECT {_SETTLEMENT_COLUMNS}
    FROM energy_settlements
    WHERE id = :settlement_id
    FOR UPDATE
""")

_FIND_BY_KEY_SQL = text(f"""
    SELECT {_SETTLEMENT_COLUMNS}
    FROM energy_settlements
    WHERE buyer_id = :buyer_id
      AND idempotency_key = :idempotency_key
      AND status <> 'FAILED'
""")

_MARK_REFUNDED_SQL = text(f"""
    UPDATE energy_settlements
    SET status = 'REFUNDED'
    WHERE id = :settlement_id AND status = 'COMPLETED'
    RETURNING {_SETTLEMENT_COLUMNS}
""")

_SET_RATING_SQL = text(f"""
    UPDATE energy_settlements
    SET rating = :rating
    WHERE id = :settlement_id
      AND status = 'COMPLETED'
      AND kind = 'PURCHASE'
      AND rating IS NULL
    RETURNING {_SETTLEMENT_COLUMNS}
""")

_LIST_FOR_ACCOUNT_SQL = text(f"""
    SELECT {_SETTLEMENT_COLUMNS}
    FROM energy_settlements
    WHERE
        (
            (CAST(:role AS TEXT) IS NULL AND (buyer_id = :account_id OR seller_id = :account_id))
            OR (CAST(:role AS TEXT) = 'buyer' AND buyer_id = :account_id)
            OR (CAST(:role AS TEXT) = 'seller' AND seller_id = :account_id)
        )
        AND (
            CAST(:cursor_ts AS TIMESTAMPTZ) IS NULL
            OR created_at < CAST(:cursor_ts AS TIMESTAMPTZ)
            OR (
                created_at = CAST(:cursor_ts AS TIMESTAMPTZ)
                AND id < CAST(:cursor_id AS TEXT)
            )
        )
    ORDER BY created_at DESC, id DESC
    LIMIT :limit
""")

# ---------------------------------------------------------------------------
# SQL: investor_allocations
# ---------------------------------------------------------------------------

_ACTIVE_ALLOCATIONS_SQL = text("""
    SELECT id, investor_id, host_id, amount_invested, status, created_at
    FROM investor_allocations
    WHERE host_id = :host_id AND status = 'ACTIVE'
    ORDER BY investor_id, id
""")

_INSERT_ALLOCATION_SQL = text("""
    INSERT INTO investor_allocations (id, investor_id, host_id, amount_invested, status)
    VALUES (:id, :investor_id, :host_id, :amount_invested, :status)
    RETURNING id, investor_id, host_id, amount_invested, status, created_at
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _shares_from_json(raw: object) -> list[InvestorShare]:
    if raw is None:
        return []
    items = json.loads(raw) if isinstance(raw, str) else raw
    return [InvestorShare(investor_id=i["investor_id"], amount=int(i["amount"])) for i in items]  # type: ignore[union-attr]


def _shares_to_json(shares: list[InvestorShare]) -> str:
    return json.dumps([{"investor_id": s.investor_id, "amount": s.amount} for s in shares])


def _row_to_settlement(row: object) -> SettlementRecord:
    return SettlementRecord(
        id=row.id,  # type: ignore[attr-defined]
        kind=row.kind,  # type: ignore[attr-defined]
        buyer_id=row.buyer_id,  # type: ignore[attr-defined]
        seller_id=row.seller_id,  # type: ignore[attr-defined]
        listing_id=row.listing_id,  # type: ignore[attr-defined]
        energy_kwh=Decimal(row.energy_kwh),  # type: ignore[attr-defined]
        price_per_kwh=row.price_per_kwh,  # type: ignore[attr-defined]
        subtotal=row.subtotal,  # type: ignore[attr-defined]
        buyer_fee=row.buyer_fee,  # type: ignore[attr-defined]
        seller_fee=row.seller_fee,  # type: ignore[attr-defined]
        platform_fee=row.platform_fee,  # type: ignore[attr-defined]
        total_amount=row.total_amount,  # type: ignore[attr-defined]
        seller_credit=row.seller_credit,  # type: ignore[attr-defined]
        settlement_mode=row.settlement_mode,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        idempotency_key=row.idempotency_key,  # type: ignore[attr-defined]
        original_settlement_id=row.original_settlement_id,  # type: ignore[attr-defined]
        reason=row.reason,  # type: ignore[attr-defined]
        rating=row.rating,  # type: ignore[attr-defined]
        investor_shares=_shares_from_json(row.investor_shares),  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_allocation(row: object) -> InvestorAllocation:
    return InvestorAllocation(
        id=row.id,  # type: ignore[attr-defined]
        investor_id=row.investor_id,  # type: ignore[attr-defined]
        host_id=row.host_id,  # type: ignore[attr-defined]
        amount_invested=row.amount_invested,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class SettlementRepository:
    async def insert_settlement(
        self, db: AsyncSession, record: SettlementRecord
    ) -> SettlementRecord:
        params = {
            "id": record.id,
            "kind": record.kind,
            "buyer_id": record.buyer_id,
            "seller_id": record.seller_id,
            "listing_id": record.listing_id,
            "energy_kwh": record.energy_kwh,
            "price_per_kwh": record.price_per_kwh,
            "subtotal": record.subtotal,
            "buyer_fee": record.buyer_fee,
            "seller_fee": record.seller_fee,
            "platform_fee": record.platform_fee,
            "total_amount": record.total_amount,
            "seller_credit": record.seller_credit,
            "settlement_mode": record.settlement_mode,
            "status": record.status,
            "idempotency_key": record.idempotency_key,
            "original_settlement_id": record.original_settlement_id,
            "reason": record.reason,
            "investor_shares": _shares_to_json(record.investor_shares),
        }
        try:
            result = await db.execute(_INSERT_SETTLEMENT_SQL, params)
        except IntegrityError as exc:
            if IDEMPOTENCY_INDEX in str(exc.orig):
                raise DuplicateSettlementError(record.idempotency_key or "") from exc
            raise
        row = result.fetchone()
        if row is None:
            raise InternalError("Settlement insert returned no rows; this should never happen")
        return _row_to_settlement(row)

    async def get_settlement(
        self, db: AsyncSession, settlement_id: str, for_update: bool = False
    ) -> SettlementRecord | None:
        sql = _GET_SETTLEMENT_FOR_UPDATE_SQL if for_update else _GET_SETTLEMENT_SQL
        result = await db.execute(sql, {"settlement_id": settlement_id})
        row = result.fetchone()
        return _row_to_settlement(row) if row else None

    async def find_by_idempotency_key(
        self, db: AsyncSession, buyer_id: str, idempotency_key: str
    ) -> SettlementRecord | None:
        result = await db.execute(
            _FIND_BY_KEY_SQL, {"buyer_id": buyer_id, "idempotency_key": idempotency_key}
        )
        row = result.fetchone()
        return _row_to_settlement(row) if row else None

    async def mark_refunded(
        self, db: AsyncSession, settlement_id: str
    ) -> SettlementRecord | None:
        result = await db.execute(_MARK_REFUNDED_SQL, {"settlement_id": settlement_id})
        row = result.fetchone()
        return _row_to_settlement(row) if row else None

    async def set_rating(
        self, db: AsyncSession, settlement_id: str, rating: int
    ) -> SettlementRecord | None:
        result = await db.execute(
            _SET_RATING_SQL, {"settlement_id": settlement_id, "rating": rating}
        )
        row = result.fetchone()
        return _row_to_settlement(row) if row else None

    async def list_for_account(
        self,
        db: AsyncSession,
        account_id: str,
        role: str | None,
        cursor_ts: datetime | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[SettlementRecord]:
        result = await db.execute(
            _LIST_FOR_ACCOUNT_SQL,
            {
                "account_id": account_id,
                "role": role,
                "cursor_ts": cursor_ts,
                "cursor_id": cursor_id,
                "limit": limit,
            },
        )
        return [_row_to_settlement(row) for row in result.fetchall()]


class InvestorRepository:
    async def list_active_allocations(
        self, db: AsyncSession, host_id: str
    ) -> list[InvestorAllocation]:
        result = await db.execute(_ACTIVE_ALLOCATIONS_SQL, {"host_id": host_id})
        return [_row_to_allocation(row) for row in result.fetchall()]

    async def add_allocation(
        self, db: AsyncSession, allocation: InvestorAllocation
    ) -> InvestorAllocation:
        result = await db.execute(
            _INSERT_ALLOCATION_SQL,
            {
                "id": allocation.id,
                "investor_id": allocation.investor_id,
                "host_id": allocation.host_id,
                "amount_invested": allocation.amount_invested,
                "status": allocation.status,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Allocation insert returned no rows; this should never happen")
        return _row_to_allocation(row)
