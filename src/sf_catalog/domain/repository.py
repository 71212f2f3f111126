"""Catalog collaborator Protocol: price/stock reads and the stock decrement."""
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_catalog.domain.models import Product


class CatalogProtocol(Protocol):
    async def get_products(
        self, db: AsyncSession, product_ids: list[str]
    ) -> dict[str, Product]: ...

    async def decrement_stock(
        self, db: AsyncSession, product_id: str, quantity: int
    ) -> int | None: ...
