"""Repository Protocols: dependency inversion for testability."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.em_settlement.domain.models import InvestorAllocation, SettlementRecord


class SettlementRepositoryProtocol(Protocol):
    async def insert_settlement(
        self, db: AsyncSession, record: SettlementRecord
    ) -> SettlementRecord:
        """Raises DuplicateSettlementError when (buyer, key) already has a live record."""
        ...

    async def get_settlement(
        self, db: AsyncSession, settlement_id: str, for_update: bool = False
    ) -> SettlementRecord | None: ...

    async def find_by_idempotency_key(
        self, db: AsyncSession, buyer_id: str, idempotency_key: str
    ) -> SettlementRecord | None:
        """Only non-FAILED records; a failed attempt may be retried with its key."""
        ...

    async def mark_refunded(
        self, db: AsyncSession, settlement_id: str
    ) -> SettlementRecord | None: ...

    async def set_rating(
        self, db: AsyncSession, settlement_id: str, rating: int
    ) -> SettlementRecord | None: ...

    async def list_for_account(
        self,
        db: AsyncSession,
        account_id: str,
        role: str | None,
        cursor_ts: datetime | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[SettlementRecord]: ...


class InvestorRepositoryProtocol(Protocol):
    async def list_active_allocations(
        self, db: AsyncSession, host_id: str
    ) -> list[InvestorAllocation]: ...

    async def add_allocation(
        self, db: AsyncSession, allocation: InvestorAllocation
    ) -> InvestorAllocation: ...
