"""Catalog projection: only the product fields the order engine reads or mutates."""
from dataclasses import dataclass


@dataclass
class Product:
    id: str
    name: str
    sku: str
    price: int  # current selling price, cents
    original_price: int  # list price before any markdown, cents
    stock_quantity: int
    track_stock: bool = True
    is_active: bool = True
    product_type: str = "simple"  # simple / bundle
    bundle_items: list[dict[str, object]] | None = None

    def available_for(self, quantity: int) -> bool:
        if not self.track_stock:
            return True
        return quantity <= self.stock_quantity
