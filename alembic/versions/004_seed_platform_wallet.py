"""004: seed the platform fee wallet

Revision ID: 004
Revises: 003
Create Date: 2026-10-12
"""
from typing import Sequence, Union

from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        INSERT INTO wallets (owner_id, balance, currency, version)
        VALUES ('PLATFORM_FEE', 0, 'INR', 0)
        ON CONFLICT (owner_id) DO NOTHING;
    """)


def downgrade() -> None:
    op.execute("DELETE FROM wallets WHERE owner_id = 'PLATFORM_FEE' AND balance = 0;")
