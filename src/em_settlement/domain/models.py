"""Domain models for em_settlement: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


@dataclass
class InvestorAllocation:
    id: str
    investor_id: str
    host_id: str
    amount_invested: int         # paise
    status: str                  # InvestorAllocationStatus value
    created_at: datetime | None = None


@dataclass
class InvestorShare:
    investor_id: str
    amount: int                  # paise


@dataclass
class SettlementRecord:
    """One executed purchase or refund.

    PURCHASE: total_amount is what the buyer paid; seller_credit and
    platform_fee are what the seller and the platform received.
    REFUND: total_amount is what the buyer got back; seller_credit and
    platform_fee are what was taken back from each.
    """

    id: str
    kind: str                    # SettlementKind value
    buyer_id: str
    seller_id: str
    listing_id: str
    energy_kwh: Decimal
    price_per_kwh: int
    subtotal: int
    buyer_fee: int
    seller_fee: int
    platform_fee: int
    total_amount: int
    seller_credit: int
    settlement_mode: str         # SettlementMode value
    status: str                  # SettlementStatus value
    idempotency_key: str | None = None
    original_settlement_id: str | None = None
    reason: str | None = None
    rating: int | None = None
    investor_shares: list[InvestorShare] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def investor_total(self) -> int:
        return sum(share.amount for share in self.investor_shares)
