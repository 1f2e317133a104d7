"""Global money invariants.

    1. Σ wallet balances == net deposits (DEPOSIT + WITHDRAW history amounts)
    2. every wallet's balance == Σ its history amounts
    3. no wallet is negative
    4. every COMPLETED purchase conserves money:
       total_amount == seller_credit + platform_fee + Σ investor shares
"""
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_TOTAL_BALANCE_SQL = text("SELECT COALESCE(SUM(balance), 0) FROM wallets")

_NET_DEPOSIT_SQL = text("""
    SELECT COALESCE(SUM(amount), 0)
    FROM wallet_transactions
    WHERE entry_type IN ('DEPOSIT', 'WITHDRAW')
""")

_DRIFTED_WALLETS_SQL = text("""
    SELECT w.owner_id, w.balance, COALESCE(SUM(t.amount), 0) AS history_total
    FROM wallets w
    LEFT JOIN wallet_transactions t ON t.owner_id = w.owner_id
    GROUP BY w.owner_id, w.balance
    HAVING w.balance <> COALESCE(SUM(t.amount), 0)
    ORDER BY w.owner_id
    LIMIT 20
""")

_NEGATIVE_WALLETS_SQL = text("""
    SELECT owner_id, balance FROM wallets WHERE balance < 0 ORDER BY owner_id LIMIT 20
""")

_UNBALANCED_SETTLEMENTS_SQL = text("""
    SELECT s.id, s.total_amount, s.seller_credit, s.platform_fee,
           COALESCE((
               SELECT SUM((share ->> 'amount')::BIGINT)
               FROM jsonb_array_elements(s.investor_shares) AS share
           ), 0) AS investor_total
    FROM energy_settlements s
    WHERE s.kind = 'PURCHASE' AND s.status IN ('COMPLETED', 'REFUNDED')
      AND s.total_amount <> s.seller_credit + s.platform_fee + COALESCE((
               SELECT SUM((share ->> 'amount')::BIGINT)
               FROM jsonb_array_elements(s.investor_shares) AS share
           ), 0)
    ORDER BY s.id
    LIMIT 20
""")


async def verify_global_invariants(db: AsyncSession) -> list[str]:
    """Returns a list of violation strings; empty means the books balance."""
    violations: list[str] = []

    total_balance = (await db.execute(_TOTAL_BALANCE_SQL)).scalar_one()
    net_deposits = (await db.execute(_NET_DEPOSIT_SQL)).scalar_one()
    if total_balance != net_deposits:
        violations.append(
            f"Wallet total {total_balance} != net deposits {net_deposits}"
        )

    for row in (await db.execute(_DRIFTED_WALLETS_SQL)).fetchall():
        violations.append(
            f"Wallet {row.owner_id} balance {row.balance} != history total {row.history_total}"
        )

    for row in (await db.execute(_NEGATIVE_WALLETS_SQL)).fetchall():
        violations.append(f"Wallet {row.owner_id} is negative: {row.balance}")

    for row in (await db.execute(_UNBALANCED_SETTLEMENTS_SQL)).fetchall():
        violations.append(
            f"Settlement {row.id} does not conserve money: total {row.total_amount} != "
            f"seller {row.seller_credit} + platform {row.platform_fee} + investors {row.investor_total}"
        )

    for msg in violations:
        logger.error("Invariant violated: %s", msg)
    return violations
