"""Pricing value objects and the injected pricing configuration."""
from dataclasses import dataclass, field
from typing import Any

from config.settings import settings
from src.sf_common.enums import CustomerType
from src.sf_discount.domain.models import DiscountSnapshot


@dataclass(frozen=True)
class PricingConfig:
    free_shipping_threshold: int  # cents; subtotal >= threshold ships free
    shipping_fee: int  # cents, flat
    currency: str = "TRY"

    @classmethod
    def from_settings(cls) -> "PricingConfig":
        return cls(
            free_shipping_threshold=settings.FREE_SHIPPING_THRESHOLD_CENTS,
            shipping_fee=settings.SHIPPING_FEE_CENTS,
            currency=settings.CURRENCY,
        )

    def shipping_cost_for(self, subtotal: int) -> int:
        return 0 if subtotal >= self.free_shipping_threshold else self.shipping_fee


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int


@dataclass
class PricingRequest:
    lines: list[CartLine]
    user_id: str
    customer_type: str = CustomerType.INDIVIDUAL.value
    company_name: str | None = None
    tax_number: str | None = None
    coupon_code: str | None = None
    campaign_id: str | None = None
    check_billing: bool = True  # quotes skip it; order creation never does


@dataclass(frozen=True)
class PricedItem:
    product_id: str
    name: str
    sku: str
    product_type: str
    unit_price: int  # server-side current price at pricing time
    original_price: int
    quantity: int
    bundle_items: list[dict[str, Any]] = field(default_factory=list)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass
class PricingResult:
    subtotal: int
    discount_amount: int
    shipping_cost: int
    total_amount: int
    currency: str
    priced_items: list[PricedItem]
    discount: DiscountSnapshot | None = None

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.priced_items)
