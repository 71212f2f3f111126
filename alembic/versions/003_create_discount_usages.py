"""003: create discount_usages ledger

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE discount_usages (
            id                  VARCHAR(64)     PRIMARY KEY,
            source_type         VARCHAR(20)     NOT NULL,
            source_id           VARCHAR(64)     NOT NULL,
            user_id             VARCHAR(64)     NOT NULL,
            order_id            VARCHAR(64)     NOT NULL,
            order_amount        BIGINT          NOT NULL,
            discount_amount     BIGINT          NOT NULL,
            used_at             TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_discount_usages_order     UNIQUE (source_type, source_id, order_id),
            CONSTRAINT ck_discount_usages_source    CHECK (source_type IN ('coupon', 'campaign')),
            CONSTRAINT ck_discount_usages_amounts   CHECK (order_amount >= 0 AND discount_amount >= 0)
        );
    """)
    op.execute("""
        CREATE INDEX idx_discount_usages_user
        ON discount_usages (source_type, user_id, source_id);
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS discount_usages CASCADE;")
