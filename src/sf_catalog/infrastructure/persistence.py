"""CatalogRepository: raw SQL over the products stock projection."""
import json
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_catalog.domain.models import Product

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_GET_PRODUCTS_SQL = text("""
    SELECT id, name, sku, product_type, price, original_price,
           stock_quantity, track_stock, is_active, bundle_items
    FROM products
    WHERE id IN :ids
""").bindparams(bindparam("ids", expanding=True))

# Clamped at zero; untracked products are left alone (0 rows → None).
_DECREMENT_STOCK_SQL = text("""
    UPDATE products
    SET stock_quantity = GREATEST(stock_quantity - :quantity, 0)
    WHERE id = :id AND track_stock = TRUE
    RETURNING stock_quantity
""")


def _json(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def _row_to_product(row: Any) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        sku=row.sku,
        product_type=row.product_type,
        price=row.price,
        original_price=row.original_price,
        stock_quantity=row.stock_quantity,
        track_stock=row.track_stock,
        is_active=row.is_active,
        bundle_items=_json(row.bundle_items),
    )


class CatalogRepository:
    """Concrete implementation of CatalogProtocol using raw SQL."""

    async def get_products(
        self, db: AsyncSession, product_ids: list[str]
    ) -> dict[str, Product]:
        if not product_ids:
            return {}
        result = await db.execute(_GET_PRODUCTS_SQL, {"ids": list(set(product_ids))})
        return {row.id: _row_to_product(row) for row in result.fetchall()}

    async def decrement_stock(
        self, db: AsyncSession, product_id: str, quantity: int
    ) -> int | None:
        """Return the remaining stock, or None when the product is untracked or missing."""
        result = await db.execute(
            _DECREMENT_STOCK_SQL, {"id": product_id, "quantity": quantity}
        )
        row = result.fetchone()
        return row.stock_quantity if row else None
