"""Domain models for em_wallet: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Wallet:
    owner_id: str
    balance: int             # paise, never negative
    currency: str
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class WalletTransaction:
    id: int                          # BIGSERIAL
    owner_id: str
    entry_type: str                  # WalletEntryType value
    amount: int                      # paise, positive=credit negative=debit
    balance_before: int
    balance_after: int
    reference_type: str | None = None
    reference_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None
