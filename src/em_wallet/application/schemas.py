"""Pydantic schemas and cursor utilities for em_wallet API."""

import base64
import json

from pydantic import BaseModel, Field

from src.em_common.money import paise_to_display

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except (ValueError, KeyError, TypeError):
        return None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class DepositRequest(BaseModel):
    amount_paise: int = Field(..., gt=0, description="Amount to top up in paise")


class WithdrawRequest(BaseModel):
    amount_paise: int = Field(..., gt=0, description="Amount to withdraw in paise")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    owner_id: str
    balance_paise: int
    balance_display: str
    currency: str

    @classmethod
    def from_paise(cls, owner_id: str, balance: int, currency: str) -> "BalanceResponse":
        return cls(
            owner_id=owner_id,
            balance_paise=balance,
            balance_display=paise_to_display(balance),
            currency=currency,
        )


class WalletMovementResponse(BaseModel):
    balance_paise: int
    balance_display: str
    amount_paise: int
    amount_display: str
    transaction_id: int

    @classmethod
    def from_result(
        cls, balance: int, amount: int, transaction_id: int
    ) -> "WalletMovementResponse":
        return cls(
            balance_paise=balance,
            balance_display=paise_to_display(balance),
            amount_paise=amount,
            amount_display=paise_to_display(amount),
            transaction_id=transaction_id,
        )


class WalletTransactionItem(BaseModel):
    id: int
    entry_type: str
    amount_paise: int
    amount_display: str
    balance_before_paise: int
    balance_after_paise: int
    balance_after_display: str
    reference_type: str | None
    reference_id: str | None
    description: str | None
    created_at: str  # ISO8601 string


class WalletHistoryResponse(BaseModel):
    items: list[WalletTransactionItem]
    next_cursor: str | None
    has_more: bool
