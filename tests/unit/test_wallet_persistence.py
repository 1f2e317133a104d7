"""Unit tests for WalletRepository using MagicMock AsyncSession."""

from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.em_common.errors import InsufficientBalanceError, WalletNotFoundError
from src.em_wallet.infrastructure.persistence import WalletRepository


def _wallet_row(**kwargs: Any) -> MagicMock:
    row = MagicMock()
    row.owner_id = kwargs.get("owner_id", "user-1")
    row.balance = kwargs.get("balance", 100000)
    row.currency = kwargs.get("currency", "INR")
    row.version = kwargs.get("version", 1)
    row.created_at = datetime.now(UTC)
    row.updated_at = datetime.now(UTC)
    return row


def _tx_row(**kwargs: Any) -> MagicMock:
    row = MagicMock()
    row.id = kwargs.get("id", 1)
    row.owner_id = kwargs.get("owner_id", "user-1")
    row.entry_type = kwargs.get("entry_type", "DEPOSIT")
    row.amount = kwargs.get("amount", 10000)
    row.balance_before = kwargs.get("balance_before", 90000)
    row.balance_after = kwargs.get("balance_after", 100000)
    row.reference_type = kwargs.get("reference_type")
    row.reference_id = kwargs.get("reference_id")
    row.description = kwargs.get("description")
    row.created_at = datetime.now(UTC)
    return row


def _result(row: object | None) -> MagicMock:
    result = MagicMock()
    result.fetchone.return_value = row
    return result


class TestWalletRepository:
    async def test_get_wallet_maps_row(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(return_value=_result(_wallet_row(balance=4200)))

        wallet = await WalletRepository().get_wallet(db, "user-1")

        assert wallet is not None
        assert wallet.balance == 4200

    async def test_get_wallet_missing(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(return_value=_result(None))
        assert await WalletRepository().get_wallet(db, "ghost") is None

    async def test_credit_writes_history_with_before_and_after(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(
            side_effect=[_result(_wallet_row(balance=110000)), _result(_tx_row(id=9))]
        )

        wallet, entry = await WalletRepository(currency="INR").credit(
            db, "user-1", 10000, "SALE_CREDIT", "SETTLEMENT", "s-1", "Sale"
        )

        assert wallet.balance == 110000
        assert entry.id == 9
        history_params = db.execute.call_args_list[1].args[1]
        assert history_params["amount"] == 10000
        assert history_params["balance_before"] == 100000
        assert history_params["balance_after"] == 110000
        assert history_params["reference_id"] == "s-1"

    async def test_debit_records_negative_amount(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(
            side_effect=[_result(_wallet_row(balance=84250)), _result(_tx_row())]
        )

        await WalletRepository().debit(
            db, "user-1", 15750, "PURCHASE_DEBIT", "SETTLEMENT", "s-1", "Purchase"
        )

        history_params = db.execute.call_args_list[1].args[1]
        assert history_params["amount"] == -15750
        assert history_params["balance_before"] == 100000

    async def test_debit_insufficient_balance(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(side_effect=[_result(None), _result(_wallet_row(balance=500))])

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await WalletRepository().debit(db, "user-1", 15750, "PURCHASE_DEBIT", None, None, "")
        assert "500" in exc_info.value.message

    async def test_debit_missing_wallet(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(side_effect=[_result(None), _result(None)])

        with pytest.raises(WalletNotFoundError):
            await WalletRepository().debit(db, "ghost", 1, "WITHDRAW", None, None, "")

    async def test_list_transactions_passes_filters(self) -> None:
        db = MagicMock()
        result = MagicMock()
        result.fetchall.return_value = [_tx_row(id=3), _tx_row(id=2)]
        db.execute = AsyncMock(return_value=result)

        entries = await WalletRepository().list_transactions(db, "user-1", 4, 21, "DEPOSIT")

        assert [e.id for e in entries] == [3, 2]
        params = db.execute.call_args.args[1]
        assert params == {"owner_id": "user-1", "cursor_id": 4, "entry_type": "DEPOSIT", "limit": 21}

    async def test_lock_wallets_in_sorted_order(self) -> None:
        db = MagicMock()
        db.execute = AsyncMock(return_value=MagicMock())

        await WalletRepository().lock_wallets(db, ["seller-1", "buyer-1", "PLATFORM_FEE", "buyer-1"])

        sql, params = db.execute.call_args.args
        assert "ORDER BY owner_id" in str(sql)
        assert "FOR UPDATE" in str(sql)
        assert params == {"owner_ids": ["PLATFORM_FEE", "buyer-1", "seller-1"]}
