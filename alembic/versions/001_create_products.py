"""001: create shared trigger function and the products stock projection

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE products (
            id              VARCHAR(64)     PRIMARY KEY,
            name            VARCHAR(255)    NOT NULL,
            sku             VARCHAR(64)     NOT NULL,
            product_type    VARCHAR(20)     NOT NULL DEFAULT 'simple',
            price           BIGINT          NOT NULL,
            original_price  BIGINT          NOT NULL,
            stock_quantity  INT             NOT NULL DEFAULT 0,
            track_stock     BOOLEAN         NOT NULL DEFAULT TRUE,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            bundle_items    JSONB,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_products_sku              UNIQUE (sku),
            CONSTRAINT ck_products_price            CHECK (price >= 0),
            CONSTRAINT ck_products_original_price   CHECK (original_price >= 0),
            CONSTRAINT ck_products_stock_gte_0      CHECK (stock_quantity >= 0),
            CONSTRAINT ck_products_type             CHECK (product_type IN ('simple', 'bundle'))
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_products_updated_at
            BEFORE UPDATE ON products
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON TABLE products IS "
        "'Stock projection of the catalog: current price and stock per product';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS products CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
