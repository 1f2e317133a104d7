"""WalletApplicationService: thin composition layer.

Deposit and withdraw own their transaction (commit on success, rollback and
re-raise otherwise). Balance and history are read-only.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.em_common.enums import WalletEntryType
from src.em_common.errors import WalletNotFoundError
from src.em_common.money import paise_to_display
from src.em_wallet.application.schemas import (
    BalanceResponse,
    WalletHistoryResponse,
    WalletMovementResponse,
    WalletTransactionItem,
    cursor_decode,
    cursor_encode,
)
from src.em_wallet.domain.repository import WalletRepositoryProtocol
from src.em_wallet.infrastructure.persistence import WalletRepository

logger = logging.getLogger(__name__)


class WalletApplicationService:
    def __init__(self, repo: WalletRepositoryProtocol | None = None) -> None:
        self._repo: WalletRepositoryProtocol = repo or WalletRepository()

    async def get_balance(self, db: AsyncSession, owner_id: str) -> BalanceResponse:
        wallet = await self._repo.get_wallet(db, owner_id)
        if wallet is None:
            raise WalletNotFoundError(owner_id)
        return BalanceResponse.from_paise(owner_id, wallet.balance, wallet.currency)

    async def open_wallet(self, db: AsyncSession, owner_id: str) -> BalanceResponse:
        try:
            wallet = await self._repo.create_wallet(db, owner_id, settings.CURRENCY)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return BalanceResponse.from_paise(owner_id, wallet.balance, wallet.currency)

    async def deposit(
        self, db: AsyncSession, owner_id: str, amount_paise: int
    ) -> WalletMovementResponse:
        try:
            wallet, entry = await self._repo.credit(
                db,
                owner_id,
                amount_paise,
                WalletEntryType.DEPOSIT.value,
                None,
                None,
                f"Top-up {paise_to_display(amount_paise)}",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Wallet %s topped up by %d paise", owner_id, amount_paise)
        return WalletMovementResponse.from_result(wallet.balance, amount_paise, entry.id)

    async def withdraw(
        self, db: AsyncSession, owner_id: str, amount_paise: int
    ) -> WalletMovementResponse:
        try:
            wallet, entry = await self._repo.debit(
                db,
                owner_id,
                amount_paise,
                WalletEntryType.WITHDRAW.value,
                None,
                None,
                f"Withdrawal {paise_to_display(amount_paise)}",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Wallet %s withdrew %d paise", owner_id, amount_paise)
        return WalletMovementResponse.from_result(wallet.balance, amount_paise, entry.id)

    async def list_history(
        self,
        db: AsyncSession,
        owner_id: str,
        cursor: str | None,
        limit: int,
        entry_type: str | None,
    ) -> WalletHistoryResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._repo.list_transactions(
            db, owner_id, cursor_id, limit + 1, entry_type
        )
        has_more = len(entries) > limit
        page = entries[:limit]

        items = [
            WalletTransactionItem(
                id=e.id,
                entry_type=e.entry_type,
                amount_paise=e.amount,
                amount_display=paise_to_display(e.amount),
                balance_before_paise=e.balance_before,
                balance_after_paise=e.balance_after,
                balance_after_display=paise_to_display(e.balance_after),
                reference_type=e.reference_type,
                reference_id=e.reference_id,
                description=e.description,
                created_at=e.created_at.isoformat() if e.created_at else "",
            )
            for e in page
        ]

        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return WalletHistoryResponse(items=items, next_cursor=next_cursor, has_more=has_more)
