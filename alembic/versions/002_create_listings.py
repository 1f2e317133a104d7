"""002: create seller addresses and energy listings

Revision ID: 002
Revises: 001
Create Date: 2026-10-12
"""
from typing import Sequence, Union

from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE user_addresses (
            id          BIGSERIAL        PRIMARY KEY,
            user_id     VARCHAR(64)      NOT NULL,
            latitude    DOUBLE PRECISION,
            longitude   DOUBLE PRECISION,
            is_default  BOOLEAN          NOT NULL DEFAULT FALSE,
            created_at  TIMESTAMPTZ      NOT NULL DEFAULT NOW(),
            updated_at  TIMESTAMPTZ      NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_user_addresses_lat CHECK (latitude IS NULL OR latitude BETWEEN -90 AND 90),
            CONSTRAINT ck_user_addresses_lng CHECK (longitude IS NULL OR longitude BETWEEN -180 AND 180)
        );
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_user_addresses_default
            ON user_addresses (user_id) WHERE is_default = TRUE;
    """)
    op.execute("""
        CREATE TRIGGER trg_user_addresses_updated_at
            BEFORE UPDATE ON user_addresses
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)

    op.execute("""
        CREATE TABLE energy_listings (
            id                  VARCHAR(64)      PRIMARY KEY,
            seller_id           VARCHAR(64)      NOT NULL,
            energy_amount_kwh   NUMERIC(12, 4)   NOT NULL,
            price_per_kwh       BIGINT           NOT NULL,
            min_purchase_kwh    NUMERIC(12, 4)   NOT NULL DEFAULT 1.0,
            renewable_cert      BOOLEAN          NOT NULL DEFAULT TRUE,
            available_from      TIMESTAMPTZ      NOT NULL,
            available_to        TIMESTAMPTZ      NOT NULL,
            status              VARCHAR(20)      NOT NULL DEFAULT 'ACTIVE',
            listing_type        VARCHAR(20)      NOT NULL DEFAULT 'SPOT',
            settlement_mode     VARCHAR(20)      NOT NULL DEFAULT 'DIRECT',
            location_latitude   DOUBLE PRECISION,
            location_longitude  DOUBLE PRECISION,
            description         TEXT,
            created_at          TIMESTAMPTZ      NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ      NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_listings_energy_gte_0 CHECK (energy_amount_kwh >= 0),
            CONSTRAINT ck_listings_price_gt_0 CHECK (price_per_kwh > 0),
            CONSTRAINT ck_listings_min_purchase_gt_0 CHECK (min_purchase_kwh > 0),
            CONSTRAINT ck_listings_window CHECK (available_to > available_from),
            CONSTRAINT ck_listings_status CHECK (status IN ('ACTIVE', 'SOLD', 'EXPIRED', 'CANCELLED')),
            CONSTRAINT ck_listings_type CHECK (listing_type IN ('SPOT', 'FORWARD', 'SUBSCRIPTION')),
            CONSTRAINT ck_listings_mode CHECK (settlement_mode IN ('DIRECT', 'HOST_INVESTMENT')),
            CONSTRAINT ck_listings_point CHECK (
                (location_latitude IS NULL) = (location_longitude IS NULL)
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_energy_listings_updated_at
            BEFORE UPDATE ON energy_listings
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute("CREATE INDEX idx_listings_seller ON energy_listings (seller_id, created_at DESC);")
    op.execute("""
        CREATE INDEX idx_listings_active_window
            ON energy_listings (available_to) WHERE status = 'ACTIVE';
    """)
    op.execute("""
        CREATE INDEX idx_listings_active_price_energy
            ON energy_listings (price_per_kwh, energy_amount_kwh) WHERE status = 'ACTIVE';
    """)
    op.execute("""
        CREATE INDEX idx_listings_location
            ON energy_listings (location_latitude, location_longitude)
            WHERE location_latitude IS NOT NULL;
    """)
    op.execute("COMMENT ON TABLE energy_listings IS 'Seller energy offers, price in paise per kWh';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS energy_listings CASCADE;")
    op.execute("DROP TABLE IF EXISTS user_addresses CASCADE;")
