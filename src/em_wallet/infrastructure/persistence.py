"""WalletRepository: concrete implementation of WalletRepositoryProtocol.

All balance-mutating operations use atomic PostgreSQL UPDATE ... RETURNING.
A debit returning 0 rows means the balance would go negative (or the wallet
does not exist); the table's CHECK (balance >= 0) backs this up.

Transaction ownership: the CALLER (settlement or wallet application service)
starts and commits the transaction. Nothing here commits.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.em_common.errors import (
    InsufficientBalanceError,
    InternalError,
    WalletNotFoundError,
)
from src.em_wallet.domain.models import Wallet, WalletTransaction

# ---------------------------------------------------------------------------
# SQL: wallets
# ---------------------------------------------------------------------------

_GET_WALLET_SQL = text("""
    SELECT owner_id, balance, currency, version, created_at, updated_at
    FROM wallets
    WHERE owner_id = :owner_id
""")

_CREATE_WALLET_SQL = text("""
    INSERT INTO wallets (owner_id, balance, currency)
    VALUES (:owner_id, 0, :currency)
    ON CONFLICT (owner_id) DO UPDATE SET updated_at = wallets.updated_at
    RETURNING owner_id, balance, currency, version, created_at, updated_at
""")

# Credits create the wallet on first use (sellers and investors may never have topped up)
_CREDIT_SQL = text("""
    INSERT INTO wallets (owner_id, balance, currency)
    VALUES (:owner_id, :amount, :currency)
    ON CONFLICT (owner_id) DO UPDATE
        SET balance = wallets.balance + EXCLUDED.balance,
            version = wallets.version + 1,
            updated_at = NOW()
    RETURNING owner_id, balance, currency, version, created_at, updated_at
""")

_DEBIT_SQL = text("""
    UPDATE wallets
    SET balance = balance - :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE owner_id = :owner_id AND balance >= :amount
    RETURNING owner_id, balance, currency, version, created_at, updated_at
""")

# Row locks in owner_id order, so two transfers touching the same wallets
# never wait on each other in opposite orders
_LOCK_WALLETS_SQL = text("""
    SELECT owner_id
    FROM wallets
    WHERE owner_id = ANY(:owner_ids)
    ORDER BY owner_id
    FOR UPDATE
""")

# ---------------------------------------------------------------------------
# SQL: wallet_transactions (append-only)
# ---------------------------------------------------------------------------

_INSERT_TRANSACTION_SQL = text("""
    INSERT INTO wallet_transactions
        (owner_id, entry_type, amount, balance_before, balance_after,
         reference_type, reference_id, description)
    VALUES
        (:owner_id, :entry_type, :amount, :balance_before, :balance_after,
         :reference_type, :reference_id, :description)
    RETURNING id, owner_id, entry_type, amount, balance_before, balance_after,
              reference_type, reference_id, description, created_at
""")

_LIST_TRANSACTIONS_SQL = text("""
    SELECT id, owner_id, entry_type, amount, balance_before, balance_after,
           reference_type, reference_id, description, created_at
    FROM wallet_transactions
    WHERE owner_id = :owner_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < CAST(:cursor_id AS BIGINT))
      AND (CAST(:entry_type AS TEXT) IS NULL OR entry_type = CAST(:entry_type AS TEXT))
    ORDER BY id DESC
    LIMIT :limit
""")


def _row_to_wallet(row: object) -> Wallet:
    return Wallet(
        owner_id=row.owner_id,  # type: ignore[attr-defined]
        balance=row.balance,  # type: ignore[attr-defined]
        currency=row.currency,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_transaction(row: object) -> WalletTransaction:
    return WalletTransaction(
        id=row.id,  # type: ignore[attr-defined]
        owner_id=row.owner_id,  # type: ignore[attr-defined]
        entry_type=row.entry_type,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        balance_before=row.balance_before,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        reference_type=row.reference_type,  # type: ignore[attr-defined]
        reference_id=row.reference_id,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class WalletRepository:
    """Concrete repository: all operations atomic at the SQL level."""

    def __init__(self, currency: str | None = None) -> None:
        self._currency = currency or settings.CURRENCY

    async def get_wallet(self, db: AsyncSession, owner_id: str) -> Wallet | None:
        result = await db.execute(_GET_WALLET_SQL, {"owner_id": owner_id})
        row = result.fetchone()
        return _row_to_wallet(row) if row else None

    async def create_wallet(
        self, db: AsyncSession, owner_id: str, currency: str
    ) -> Wallet:
        result = await db.execute(
            _CREATE_WALLET_SQL, {"owner_id": owner_id, "currency": currency}
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Wallet upsert returned no rows; this should never happen")
        return _row_to_wallet(row)

    async def lock_wallets(self, db: AsyncSession, owner_ids: list[str]) -> None:
        """Lock the existing wallets among owner_ids, in sorted order. Missing ones are skipped."""
        await db.execute(_LOCK_WALLETS_SQL, {"owner_ids": sorted(set(owner_ids))})

    async def credit(
        self,
        db: AsyncSession,
        owner_id: str,
        amount: int,
        entry_type: str,
        reference_type: str | None,
        reference_id: str | None,
        description: str,
    ) -> tuple[Wallet, WalletTransaction]:
        result = await db.execute(
            _CREDIT_SQL,
            {"owner_id": owner_id, "amount": amount, "currency": self._currency},
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Wallet credit returned no rows; this should never happen")
        wallet = _row_to_wallet(row)
        entry = await self._append(
            db, wallet, amount, entry_type, reference_type, reference_id, description
        )
        return wallet, entry

    async def debit(
        self,
        db: AsyncSession,
        owner_id: str,
        amount: int,
        entry_type: str,
        reference_type: str | None,
        reference_id: str | None,
        description: str,
    ) -> tuple[Wallet, WalletTransaction]:
        result = await db.execute(_DEBIT_SQL, {"owner_id": owner_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            current = await self.get_wallet(db, owner_id)
            if current is None:
                raise WalletNotFoundError(owner_id)
            raise InsufficientBalanceError(amount, current.balance)
        wallet = _row_to_wallet(row)
        entry = await self._append(
            db, wallet, -amount, entry_type, reference_type, reference_id, description
        )
        return wallet, entry

    async def list_transactions(
        self,
        db: AsyncSession,
        owner_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
    ) -> list[WalletTransaction]:
        result = await db.execute(
            _LIST_TRANSACTIONS_SQL,
            {
                "owner_id": owner_id,
                "cursor_id": cursor_id,
                "entry_type": entry_type,
                "limit": limit,
            },
        )
        return [_row_to_transaction(row) for row in result.fetchall()]

    async def _append(
        self,
        db: AsyncSession,
        wallet: Wallet,
        signed_amount: int,
        entry_type: str,
        reference_type: str | None,
        reference_id: str | None,
        description: str,
    ) -> WalletTransaction:
        ledger_result = await db.execute(
            _INSERT_TRANSACTION_SQL,
            {
                "owner_id": wallet.owner_id,
                "entry_type": entry_type,
                "amount": signed_amount,
                "balance_before": wallet.balance - signed_amount,
                "balance_after": wallet.balance,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "description": description,
            },
        )
        ledger_row = ledger_result.fetchone()
        if ledger_row is None:
            raise InternalError("Wallet history insert returned no rows; this should never happen")
        return _row_to_transaction(ledger_row)
