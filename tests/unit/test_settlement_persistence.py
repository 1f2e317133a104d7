"""Unit tests for SettlementRepository / InvestorRepository using MagicMock AsyncSession."""

import json
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from src.em_common.errors import DuplicateSettlementError
from src.em_settlement.domain.models import InvestorShare, SettlementRecord
from src.em_settlement.infrastructure.persistence import (
    InvestorRepository,
    SettlementRepository,
)


def _make_row(**kwargs: Any) -> MagicMock:
    row = MagicMock()
    row.id = kwargs.get("id", "s-1")
    row.kind = kwargs.get("kind", "PURCHASE")
    row.buyer_id = kwargs.get("buyer_id", "buyer-1")
    row.seller_id = kwargs.get("seller_id", "seller-1")
    row.listing_id = kwargs.get("listing_id", "listing-1")
    row.energy_kwh = kwargs.get("energy_kwh", Decimal("30.0000"))
    row.price_per_kwh = kwargs.get("price_per_kwh", 500)
    row.subtotal = kwargs.get("subtotal", 15000)
    row.buyer_fee = kwargs.get("buyer_fee", 750)
    row.seller_fee = kwargs.get("seller_fee", 750)
    row.platform_fee = kwargs.get("platform_fee", 1500)
    row.total_amount = kwargs.get("total_amount", 15750)
    row.seller_credit = kwargs.get("seller_credit", 14250)
    row.settlement_mode = kwargs.get("settlement_mode", "DIRECT")
    row.status = kwargs.get("status", "COMPLETED")
    row.idempotency_key = kwargs.get("idempotency_key", "key-1")
    row.original_settlement_id = kwargs.get("original_settlement_id")
    row.reason = kwargs.get("reason")
    row.rating = kwargs.get("rating")
    row.investor_shares = kwargs.get("investor_shares", [])
    row.created_at = datetime.now(UTC)
    row.updated_at = datetime.now(UTC)
    return row


def _make_record(**kwargs: Any) -> SettlementRecord:
    fields: dict[str, Any] = {
        "id": "s-1",
        "kind": "PURCHASE",
        "buyer_id": "buyer-1",
        "seller_id": "seller-1",
        "listing_id": "listing-1",
        "energy_kwh": Decimal("30.0000"),
        "price_per_kwh": 500,
        "subtotal": 15000,
        "buyer_fee": 750,
        "seller_fee": 750,
        "platform_fee": 1500,
        "total_amount": 15750,
        "seller_credit": 14250,
        "settlement_mode": "DIRECT",
        "status": "COMPLETED",
        "idempotency_key": "key-1",
    }
    fields.update(kwargs)
    return SettlementRecord(**fields)


def _result(row: object | None) -> MagicMock:
    result = MagicMock()
    result.fetchone.return_value = row
    return result


class TestSettlementRepository:
    async def test_insert_serializes_investor_shares(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(
            return_value=_result(_make_row(investor_shares=[{"investor_id": "i1", "amount": 2100}]))
        )
        record = _make_record(investor_shares=[InvestorShare("i1", 2100)])

        saved = await SettlementRepository().insert_settlement(db, record)

        params = db.execute.call_args.args[1]
        assert json.loads(params["investor_shares"]) == [{"investor_id": "i1", "amount": 2100}]
        assert saved.investor_shares == [InvestorShare("i1", 2100)]
        assert saved.investor_total == 2100

    async def test_shares_from_json_string(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(
            return_value=_result(_make_row(investor_shares='[{"investor_id": "i2", "amount": 5}]'))
        )
        found = await SettlementRepository().get_settlement(db, "s-1")
        assert found is not None
        assert found.investor_shares == [InvestorShare("i2", 5)]

    async def test_idempotency_index_violation_maps_to_duplicate(self) -> None:
        db = MagicMock()
        orig = Exception(
            'duplicate key value violates unique constraint "uq_settlements_buyer_idempotency"'
        )
        db.execute = AsyncMock(side_effect=IntegrityError("INSERT", {}, orig))

        with pytest.raises(DuplicateSettlementError) as exc_info:
            await SettlementRepository().insert_settlement(db, _make_record())
        assert exc_info.value.code == 4005

    async def test_other_integrity_errors_propagate(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("violates foreign key"))
        )
        with pytest.raises(IntegrityError):
            await SettlementRepository().insert_settlement(db, _make_record())

    async def test_get_for_update_uses_locking_query(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(return_value=_result(_make_row()))

        await SettlementRepository().get_settlement(db, "s-1", for_update=True)

        assert "FOR UPDATE" in str(db.execute.call_args.args[0])

    async def test_mark_refunded_returns_none_when_not_completed(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(return_value=_result(None))
        assert await SettlementRepository().mark_refunded(db, "s-1") is None

    async def test_list_for_account_params(self) -> None:
        db = MagicMock()
        result = MagicMock()
        result.fetchall.return_value = [_make_row(id="s-2"), _make_row(id="s-1")]
        db.execute = AsyncMock(return_value=result)
        ts = datetime.now(UTC)

        records = await SettlementRepository().list_for_account(db, "buyer-1", "buyer", ts, "s-3", 21)

        assert [r.id for r in records] == ["s-2", "s-1"]
        params = db.execute.call_args.args[1]
        assert params["role"] == "buyer"
        assert params["cursor_ts"] == ts
        assert params["limit"] == 21


class TestInvestorRepository:
    async def test_list_active(self) -> None:
        row = MagicMock()
        row.id = "a-1"
        row.investor_id = "i1"
        row.host_id = "host-1"
        row.amount_invested = 50000
        row.status = "ACTIVE"
        row.created_at = datetime.now(UTC)
        result = MagicMock()
        result.fetchall.return_value = [row]
        db = MagicMock()
        db.execute = AsyncMock(return_value=result)

        allocations = await InvestorRepository().list_active_allocations(db, "host-1")

        assert allocations[0].amount_invested == 50000
        assert db.execute.call_args.args[1] == {"host_id": "host-1"}
