"""002: create coupons and campaigns

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE coupons (
            id                      VARCHAR(64)     PRIMARY KEY,
            code                    VARCHAR(64)     NOT NULL,
            discount_type           VARCHAR(20)     NOT NULL,
            value                   BIGINT          NOT NULL,
            min_order_amount        BIGINT          NOT NULL DEFAULT 0,
            max_discount_amount     BIGINT,
            starts_at               TIMESTAMPTZ,
            expires_at              TIMESTAMPTZ,
            usage_limit             INT,
            usage_limit_per_user    INT,
            used_count              INT             NOT NULL DEFAULT 0,
            is_active               BOOLEAN         NOT NULL DEFAULT TRUE,
            applicable_user_ids     TEXT[]          NOT NULL DEFAULT '{}',
            excluded_user_ids       TEXT[]          NOT NULL DEFAULT '{}',
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_coupons_code              UNIQUE (code),
            CONSTRAINT ck_coupons_code_upper        CHECK (code = UPPER(code)),
            CONSTRAINT ck_coupons_discount_type     CHECK (discount_type IN ('percentage', 'fixed')),
            CONSTRAINT ck_coupons_value             CHECK (
                value > 0 AND (discount_type <> 'percentage' OR value <= 100)
            ),
            CONSTRAINT ck_coupons_min_order_gte_0   CHECK (min_order_amount >= 0),
            CONSTRAINT ck_coupons_used_count_gte_0  CHECK (used_count >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_coupons_updated_at
            BEFORE UPDATE ON coupons
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE campaigns (
            id                      VARCHAR(64)     PRIMARY KEY,
            name                    VARCHAR(200)    NOT NULL,
            campaign_type           VARCHAR(30)     NOT NULL DEFAULT 'discount',
            discount_type           VARCHAR(20)     NOT NULL,
            value                   BIGINT          NOT NULL DEFAULT 0,
            max_discount_amount     BIGINT,
            min_order_amount        BIGINT          NOT NULL DEFAULT 0,
            max_order_amount        BIGINT,
            min_product_count       INT             NOT NULL DEFAULT 1,
            max_product_count       INT,
            applicable_user_ids     TEXT[]          NOT NULL DEFAULT '{}',
            excluded_user_ids       TEXT[]          NOT NULL DEFAULT '{}',
            is_active               BOOLEAN         NOT NULL DEFAULT TRUE,
            is_auto_apply           BOOLEAN         NOT NULL DEFAULT FALSE,
            priority                INT             NOT NULL DEFAULT 1,
            starts_at               TIMESTAMPTZ,
            ends_at                 TIMESTAMPTZ,
            usage_limit             INT,
            usage_limit_per_user    INT,
            total_uses              INT             NOT NULL DEFAULT 0,
            total_discount          BIGINT          NOT NULL DEFAULT 0,
            total_order_value       BIGINT          NOT NULL DEFAULT 0,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_campaigns_discount_type   CHECK (
                discount_type IN ('percentage', 'fixed', 'free_shipping')
            ),
            CONSTRAINT ck_campaigns_value           CHECK (
                value >= 0 AND (discount_type <> 'percentage' OR value <= 100)
            ),
            CONSTRAINT ck_campaigns_order_range     CHECK (
                max_order_amount IS NULL OR max_order_amount >= min_order_amount
            ),
            CONSTRAINT ck_campaigns_total_uses_gte_0 CHECK (total_uses >= 0)
        );
    """)
    op.execute("""
        CREATE INDEX idx_campaigns_auto_apply
        ON campaigns (priority DESC, id)
        WHERE is_active = TRUE AND is_auto_apply = TRUE;
    """)
    op.execute("""
        CREATE TRIGGER trg_campaigns_updated_at
            BEFORE UPDATE ON campaigns
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS campaigns CASCADE;")
    op.execute("DROP TABLE IF EXISTS coupons CASCADE;")
