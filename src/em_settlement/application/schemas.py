"""Pydantic schemas and cursor utilities for em_settlement API.

Cursor format (VARCHAR PK, not sequential):
  {"ts": "<created_at ISO>", "id": "<settlement_id>"}
  Encoded as Base64 JSON string.
"""

import base64
import json
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from src.em_common.money import paise_to_display
from src.em_settlement.domain.models import SettlementRecord

# ---------------------------------------------------------------------------
# Cursor utilities
# ---------------------------------------------------------------------------


def cursor_encode(last: SettlementRecord) -> str:
    payload = {
        "ts": last.created_at.isoformat() if last.created_at else None,
        "id": last.id,
    }
    return base64.b64encode(json.dumps(payload).encode()).decode()


def cursor_decode(cursor: str | None) -> tuple[datetime | None, str | None]:
    """Decode composite cursor -> (created_at, settlement_id), or (None, None) on error."""
    if cursor is None:
        return None, None
    try:
        data = json.loads(base64.b64decode(cursor.encode()).decode())
        return datetime.fromisoformat(data["ts"]), str(data["id"])
    except (ValueError, KeyError, TypeError):
        return None, None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class SettleRequest(BaseModel):
    listing_id: str = Field(..., min_length=1, max_length=64)
    energy_kwh: Decimal = Field(..., gt=0, max_digits=12, decimal_places=4)
    idempotency_key: str = Field(..., min_length=1, max_length=128)


class RefundRequest(BaseModel):
    amount_paise: int | None = Field(None, gt=0, description="Defaults to the full amount paid")
    reason: str = Field("", max_length=500)


class RateRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class InvestorShareItem(BaseModel):
    investor_id: str
    amount_paise: int
    amount_display: str


class SettlementResponse(BaseModel):
    id: str
    kind: str
    status: str
    buyer_id: str
    seller_id: str
    listing_id: str
    energy_kwh: str
    price_per_kwh: int
    settlement_mode: str
    subtotal_paise: int
    subtotal_display: str
    buyer_fee_paise: int
    seller_fee_paise: int
    platform_fee_paise: int
    platform_fee_display: str
    total_amount_paise: int
    total_amount_display: str
    seller_credit_paise: int
    seller_credit_display: str
    investor_shares: list[InvestorShareItem]
    idempotency_key: str | None
    original_settlement_id: str | None
    reason: str | None
    rating: int | None
    created_at: str | None

    @classmethod
    def from_domain(cls, r: SettlementRecord) -> "SettlementResponse":
        return cls(
            id=r.id,
            kind=r.kind,
            status=r.status,
            buyer_id=r.buyer_id,
            seller_id=r.seller_id,
            listing_id=r.listing_id,
            energy_kwh=str(r.energy_kwh),
            price_per_kwh=r.price_per_kwh,
            settlement_mode=r.settlement_mode,
            subtotal_paise=r.subtotal,
            subtotal_display=paise_to_display(r.subtotal),
            buyer_fee_paise=r.buyer_fee,
            seller_fee_paise=r.seller_fee,
            platform_fee_paise=r.platform_fee,
            platform_fee_display=paise_to_display(r.platform_fee),
            total_amount_paise=r.total_amount,
            total_amount_display=paise_to_display(r.total_amount),
            seller_credit_paise=r.seller_credit,
            seller_credit_display=paise_to_display(r.seller_credit),
            investor_shares=[
                InvestorShareItem(
                    investor_id=s.investor_id,
                    amount_paise=s.amount,
                    amount_display=paise_to_display(s.amount),
                )
                for s in r.investor_shares
            ],
            idempotency_key=r.idempotency_key,
            original_settlement_id=r.original_settlement_id,
            reason=r.reason,
            rating=r.rating,
            created_at=r.created_at.isoformat() if r.created_at else None,
        )


class SettlementListResponse(BaseModel):
    items: list[SettlementResponse]
    next_cursor: str | None
    has_more: bool
