"""001: create timestamp trigger function, wallets and wallet history

Revision ID: 001
Revises:
Create Date: 2026-10-12
"""
from typing import Sequence, Union

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_touch_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE wallets (
            owner_id    VARCHAR(64) PRIMARY KEY,
            balance     BIGINT      NOT NULL DEFAULT 0,
            currency    VARCHAR(3)  NOT NULL DEFAULT 'INR',
            version     BIGINT      NOT NULL DEFAULT 0,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_wallets_balance_gte_0 CHECK (balance >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_wallets_updated_at
            BEFORE UPDATE ON wallets
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute("""
        CREATE TABLE wallet_transactions (
            id              BIGSERIAL    PRIMARY KEY,
            owner_id        VARCHAR(64)  NOT NULL REFERENCES wallets(owner_id),
            entry_type      VARCHAR(30)  NOT NULL,
            amount          BIGINT       NOT NULL,
            balance_before  BIGINT       NOT NULL,
            balance_after   BIGINT       NOT NULL,
            reference_type  VARCHAR(30),
            reference_id    VARCHAR(64),
            description     VARCHAR(500),
            created_at      TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_wallet_tx_entry_type CHECK (entry_type IN (
                'DEPOSIT', 'WITHDRAW',
                'PURCHASE_DEBIT', 'SALE_CREDIT', 'FEE_REVENUE', 'INVESTOR_SHARE',
                'REFUND_CREDIT', 'REFUND_DEBIT', 'FEE_REVERSAL', 'INVESTOR_REVERSAL'
            )),
            CONSTRAINT ck_wallet_tx_balance_math CHECK (balance_after = balance_before + amount)
        );
    """)
    op.execute(
        "CREATE INDEX idx_wallet_tx_owner ON wallet_transactions (owner_id, id DESC);"
    )
    op.execute(
        "CREATE INDEX idx_wallet_tx_reference ON wallet_transactions (reference_type, reference_id);"
    )
    op.execute("COMMENT ON TABLE wallets IS 'Per-account balances, amounts in paise';")
    op.execute("COMMENT ON TABLE wallet_transactions IS 'Append-only wallet history';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS wallet_transactions CASCADE;")
    op.execute("DROP TABLE IF EXISTS wallets CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_touch_updated_at();")
