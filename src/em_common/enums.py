"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class ListingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SOLD = "SOLD"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class ListingType(str, Enum):
    SPOT = "SPOT"
    FORWARD = "FORWARD"
    SUBSCRIPTION = "SUBSCRIPTION"


class SettlementMode(str, Enum):
    """Which settlement policy prices a listing's sales."""
    DIRECT = "DIRECT"                    # spot marketplace purchase, flat fee both sides
    HOST_INVESTMENT = "HOST_INVESTMENT"  # host/platform/investor revenue split


class SettlementKind(str, Enum):
    PURCHASE = "PURCHASE"
    REFUND = "REFUND"


class SettlementStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class SettlementAttemptState(str, Enum):
    """Lifecycle of one settle() call; logged, never persisted."""
    REQUESTED = "REQUESTED"
    LOCKED = "LOCKED"
    VALIDATED = "VALIDATED"
    COMMITTED = "COMMITTED"
    REJECTED = "REJECTED"
    LOCK_FAILED = "LOCK_FAILED"


class InvestorAllocationStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class WalletEntryType(str, Enum):
    # Top-up/withdraw
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    # Purchase (buyer + seller + platform + investors)
    PURCHASE_DEBIT = "PURCHASE_DEBIT"
    SALE_CREDIT = "SALE_CREDIT"
    FEE_REVENUE = "FEE_REVENUE"
    INVESTOR_SHARE = "INVESTOR_SHARE"
    # Refund (buyer + seller + investors + platform)
    REFUND_CREDIT = "REFUND_CREDIT"
    REFUND_DEBIT = "REFUND_DEBIT"
    FEE_REVERSAL = "FEE_REVERSAL"
    INVESTOR_REVERSAL = "INVESTOR_REVERSAL"


class SortBy(str, Enum):
    DISTANCE = "distance"
    PRICE = "price"
    RATING = "rating"
