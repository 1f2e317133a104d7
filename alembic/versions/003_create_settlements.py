"""003: create settlements and investor allocations

Revision ID: 003
Revises: 002
Create Date: 2026-10-12
"""
from typing import Sequence, Union

from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE energy_settlements (
            id                      VARCHAR(64)     PRIMARY KEY,
            kind                    VARCHAR(20)     NOT NULL,
            buyer_id                VARCHAR(64)     NOT NULL,
            seller_id               VARCHAR(64)     NOT NULL,
            listing_id              VARCHAR(64)     NOT NULL REFERENCES energy_listings(id),
            energy_kwh              NUMERIC(12, 4)  NOT NULL,
            price_per_kwh           BIGINT          NOT NULL,
            subtotal                BIGINT          NOT NULL,
            buyer_fee               BIGINT          NOT NULL DEFAULT 0,
            seller_fee              BIGINT          NOT NULL DEFAULT 0,
            platform_fee            BIGINT          NOT NULL DEFAULT 0,
            total_amount            BIGINT          NOT NULL,
            seller_credit           BIGINT          NOT NULL,
            settlement_mode         VARCHAR(20)     NOT NULL,
            status                  VARCHAR(20)     NOT NULL,
            idempotency_key         VARCHAR(128),
            original_settlement_id  VARCHAR(64)     REFERENCES energy_settlements(id),
            reason                  VARCHAR(500),
            rating                  SMALLINT,
            investor_shares         JSONB           NOT NULL DEFAULT '[]'::jsonb,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_settlements_kind CHECK (kind IN ('PURCHASE', 'REFUND')),
            CONSTRAINT ck_settlements_status CHECK (
                status IN ('PENDING', 'COMPLETED', 'FAILED', 'REFUNDED')
            ),
            CONSTRAINT ck_settlements_mode CHECK (settlement_mode IN ('DIRECT', 'HOST_INVESTMENT')),
            CONSTRAINT ck_settlements_amounts CHECK (
                subtotal >= 0 AND buyer_fee >= 0 AND seller_fee >= 0
                AND platform_fee >= 0 AND total_amount >= 0 AND seller_credit >= 0
            ),
            CONSTRAINT ck_settlements_rating CHECK (rating IS NULL OR rating BETWEEN 1 AND 5),
            CONSTRAINT ck_settlements_refund_ref CHECK (
                (kind = 'REFUND') = (original_settlement_id IS NOT NULL)
            )
        );
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_settlements_buyer_idempotency
            ON energy_settlements (buyer_id, idempotency_key)
            WHERE status <> 'FAILED' AND idempotency_key IS NOT NULL;
    """)
    op.execute("""
        CREATE TRIGGER trg_energy_settlements_updated_at
            BEFORE UPDATE ON energy_settlements
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute(
        "CREATE INDEX idx_settlements_buyer ON energy_settlements (buyer_id, created_at DESC, id DESC);"
    )
    op.execute(
        "CREATE INDEX idx_settlements_seller ON energy_settlements (seller_id, created_at DESC, id DESC);"
    )

    op.execute("""
        CREATE TABLE investor_allocations (
            id               VARCHAR(64)  PRIMARY KEY,
            investor_id      VARCHAR(64)  NOT NULL,
            host_id          VARCHAR(64)  NOT NULL,
            amount_invested  BIGINT       NOT NULL,
            status           VARCHAR(20)  NOT NULL DEFAULT 'ACTIVE',
            created_at       TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_investor_alloc_amount_gt_0 CHECK (amount_invested > 0),
            CONSTRAINT ck_investor_alloc_status CHECK (
                status IN ('PENDING', 'ACTIVE', 'COMPLETED', 'CANCELLED')
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_investor_alloc_host_active
            ON investor_allocations (host_id) WHERE status = 'ACTIVE';
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS investor_allocations CASCADE;")
    op.execute("DROP TABLE IF EXISTS energy_settlements CASCADE;")
