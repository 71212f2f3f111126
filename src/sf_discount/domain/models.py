"""Discount domain models: pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Coupon:
    id: str
    code: str  # stored upper-cased
    discount_type: str  # percentage / fixed
    value: int  # percent (1-100) or cents
    min_order_amount: int = 0
    max_discount_amount: int | None = None
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    usage_limit: int | None = None  # global cap, None = unlimited
    usage_limit_per_user: int | None = None
    used_count: int = 0
    is_active: bool = True
    applicable_user_ids: list[str] = field(default_factory=list)
    excluded_user_ids: list[str] = field(default_factory=list)


@dataclass
class Campaign:
    id: str
    name: str
    discount_type: str  # percentage / fixed / free_shipping
    value: int
    campaign_type: str = "discount"
    max_discount_amount: int | None = None
    min_order_amount: int = 0
    max_order_amount: int | None = None
    min_product_count: int = 1
    max_product_count: int | None = None
    applicable_user_ids: list[str] = field(default_factory=list)
    excluded_user_ids: list[str] = field(default_factory=list)
    is_active: bool = True
    is_auto_apply: bool = False
    priority: int = 1
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    usage_limit: int | None = None
    usage_limit_per_user: int | None = None
    total_uses: int = 0
    total_discount: int = 0
    total_order_value: int = 0


@dataclass(frozen=True)
class DiscountSnapshot:
    """Immutable copy of the applied discount stored on the order.

    source_id is a back-reference for ledger lookups only; the order never
    re-reads the coupon/campaign to interpret its own discount.
    """

    source: str  # coupon / campaign
    source_id: str
    name: str  # coupon code or campaign name
    discount_type: str
    value: int
    amount: int  # cents actually deducted

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "source_id": self.source_id,
            "name": self.name,
            "discount_type": self.discount_type,
            "value": self.value,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DiscountSnapshot | None":
        if not data:
            return None
        return cls(
            source=data["source"],
            source_id=data["source_id"],
            name=data["name"],
            discount_type=data["discount_type"],
            value=int(data["value"]),
            amount=int(data["amount"]),
        )
