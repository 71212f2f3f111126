"""005: create invoice_drafts

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE invoice_drafts (
            id                  VARCHAR(64)     PRIMARY KEY,
            order_id            VARCHAR(64)     NOT NULL REFERENCES orders (id),
            order_number        VARCHAR(32)     NOT NULL,
            customer_type       VARCHAR(20)     NOT NULL,
            billing_address     JSONB           NOT NULL,
            lines               JSONB           NOT NULL,
            subtotal            BIGINT          NOT NULL,
            discount_amount     BIGINT          NOT NULL,
            shipping_cost       BIGINT          NOT NULL,
            total_amount        BIGINT          NOT NULL,
            currency            VARCHAR(3)      NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'draft',
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_invoice_drafts_order      UNIQUE (order_id),
            CONSTRAINT ck_invoice_drafts_status     CHECK (status IN ('draft', 'issued', 'cancelled'))
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS invoice_drafts CASCADE;")
