"""Repository Protocol: dependency inversion for testability.

credit/debit never commit: they always run inside the caller's transaction
so a settlement can compose several of them into one atomic unit.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.em_wallet.domain.models import Wallet, WalletTransaction


class WalletRepositoryProtocol(Protocol):
    async def get_wallet(self, db: AsyncSession, owner_id: str) -> Wallet | None: ...

    async def create_wallet(
        self, db: AsyncSession, owner_id: str, currency: str
    ) -> Wallet: ...

    async def lock_wallets(self, db: AsyncSession, owner_ids: list[str]) -> None: ...

    async def credit(
        self,
        db: AsyncSession,
        owner_id: str,
        amount: int,
        entry_type: str,
        reference_type: str | None,
        reference_id: str | None,
        description: str,
    ) -> tuple[Wallet, WalletTransaction]: ...

    async def debit(
        self,
        db: AsyncSession,
        owner_id: str,
        amount: int,
        entry_type: str,
        reference_type: str | None,
        reference_id: str | None,
        description: str,
    ) -> tuple[Wallet, WalletTransaction]: ...

    async def list_transactions(
        self,
        db: AsyncSession,
        owner_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
    ) -> list[WalletTransaction]: ...
