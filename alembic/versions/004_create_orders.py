"""004: create orders

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id                      VARCHAR(64)     PRIMARY KEY,
            order_number            VARCHAR(32)     NOT NULL,
            user_id                 VARCHAR(64)     NOT NULL,
            customer_email          VARCHAR(255)    NOT NULL DEFAULT '',
            customer_name           VARCHAR(255)    NOT NULL DEFAULT '',
            customer_type           VARCHAR(20)     NOT NULL DEFAULT 'individual',
            status                  VARCHAR(20)     NOT NULL DEFAULT 'pending',
            currency                VARCHAR(3)      NOT NULL DEFAULT 'TRY',
            subtotal                BIGINT          NOT NULL,
            discount_amount         BIGINT          NOT NULL DEFAULT 0,
            shipping_cost           BIGINT          NOT NULL DEFAULT 0,
            total_amount            BIGINT          NOT NULL,
            items                   JSONB           NOT NULL,
            shipping_address        JSONB           NOT NULL,
            billing_address         JSONB           NOT NULL,
            coupon                  JSONB,
            campaign                JSONB,
            consents                JSONB           NOT NULL DEFAULT '{}',
            customer_note           VARCHAR(500),
            payment_method          VARCHAR(20)     NOT NULL,
            payment_status          VARCHAR(20)     NOT NULL DEFAULT 'pending',
            payment_transaction_id  VARCHAR(64),
            payment_date            TIMESTAMPTZ,
            refunded_amount         BIGINT          NOT NULL DEFAULT 0,
            refund_date             TIMESTAMPTZ,
            payment_details         JSONB           NOT NULL DEFAULT '{}',
            refunds                 JSONB           NOT NULL DEFAULT '[]',
            status_history          JSONB           NOT NULL DEFAULT '[]',
            admin_notes             JSONB           NOT NULL DEFAULT '[]',
            tracking                JSONB,
            confirmed_at            TIMESTAMPTZ,
            shipped_at              TIMESTAMPTZ,
            delivered_at            TIMESTAMPTZ,
            cancelled_at            TIMESTAMPTZ,
            returned_at             TIMESTAMPTZ,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_orders_order_number       UNIQUE (order_number),
            CONSTRAINT ck_orders_status             CHECK (
                status IN ('pending', 'confirmed', 'processing', 'shipped',
                           'delivered', 'cancelled', 'returned')
            ),
            CONSTRAINT ck_orders_payment_status     CHECK (
                payment_status IN ('pending', 'processing', 'completed', 'failed', 'refunded')
            ),
            CONSTRAINT ck_orders_payment_method     CHECK (
                payment_method IN ('credit_card', 'bank_transfer')
            ),
            CONSTRAINT ck_orders_customer_type      CHECK (customer_type IN ('individual', 'business')),
            CONSTRAINT ck_orders_amounts_gte_0      CHECK (
                subtotal >= 0 AND discount_amount >= 0 AND shipping_cost >= 0
            ),
            CONSTRAINT ck_orders_total              CHECK (
                total_amount = subtotal + shipping_cost - discount_amount AND total_amount >= 0
            ),
            CONSTRAINT ck_orders_refunded           CHECK (
                refunded_amount >= 0 AND refunded_amount <= total_amount
            ),
            CONSTRAINT ck_orders_single_discount    CHECK (coupon IS NULL OR campaign IS NULL)
        );
    """)
    op.execute("CREATE INDEX idx_orders_user ON orders (user_id, id DESC);")
    op.execute("""
        CREATE UNIQUE INDEX uq_orders_payment_transaction_id
        ON orders (payment_transaction_id)
        WHERE payment_transaction_id IS NOT NULL;
    """)
    op.execute("""
        CREATE INDEX idx_orders_pending_transfers
        ON orders (created_at)
        WHERE payment_method = 'bank_transfer'
          AND payment_status IN ('pending', 'processing')
          AND status = 'pending';
    """)
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON TABLE orders IS "
        "'Order aggregate: priced snapshot, payment sub-state and fulfillment history';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
