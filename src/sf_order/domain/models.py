"""Order domain model: pure dataclasses, no SQLAlchemy dependency.

Items, addresses and the discount are snapshots taken at order time. Their
ids (product_id, DiscountSnapshot.source_id) are back-references for lookup
only; a later catalog or coupon change never alters a placed order.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from src.sf_common.enums import PaymentStatus, TERMINAL_PAYMENT_STATUSES
from src.sf_discount.domain.models import DiscountSnapshot


@dataclass(frozen=True)
class Address:
    full_name: str
    phone: str
    line1: str
    city: str
    country: str = "TR"
    line2: str | None = None
    district: str | None = None
    postal_code: str | None = None
    company_name: str | None = None
    tax_number: str | None = None
    tax_office: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Address":
        return cls(**data)

    def one_line(self) -> str:
        parts = [self.line1, self.line2, self.district, self.city, self.postal_code, self.country]
        return " ".join(p for p in parts if p)


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    name: str
    sku: str
    product_type: str
    unit_price: int
    original_price: int
    quantity: int
    bundle_items: list[dict[str, Any]] = field(default_factory=list)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["line_total"] = self.line_total
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=data["product_id"],
            name=data["name"],
            sku=data["sku"],
            product_type=data.get("product_type", "simple"),
            unit_price=int(data["unit_price"]),
            original_price=int(data.get("original_price", data["unit_price"])),
            quantity=int(data["quantity"]),
            bundle_items=list(data.get("bundle_items") or []),
        )


@dataclass
class Payment:
    method: str
    status: str = PaymentStatus.PENDING.value
    transaction_id: str | None = None
    payment_date: datetime | None = None
    refunded_amount: int = 0
    refund_date: datetime | None = None
    details: dict[str, Any] = field(default_factory=dict)
    refunds: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYMENT_STATUSES


@dataclass
class Order:
    id: str
    order_number: str
    user_id: str
    customer_email: str
    customer_name: str
    customer_type: str
    status: str
    items: list[OrderItem]
    subtotal: int
    discount_amount: int
    shipping_cost: int
    total_amount: int
    currency: str
    payment: Payment
    shipping_address: Address
    billing_address: Address
    coupon: DiscountSnapshot | None = None
    campaign: DiscountSnapshot | None = None
    consents: dict[str, bool] = field(default_factory=dict)
    customer_note: str | None = None
    status_history: list[dict[str, Any]] = field(default_factory=list)
    admin_notes: list[dict[str, Any]] = field(default_factory=list)
    tracking: dict[str, Any] | None = None
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    returned_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.total_amount != self.subtotal + self.shipping_cost - self.discount_amount:
            raise ValueError(
                f"Order {self.id}: total {self.total_amount} != "
                f"{self.subtotal} + {self.shipping_cost} - {self.discount_amount}"
            )
        if self.total_amount < 0:
            raise ValueError(f"Order {self.id}: negative total {self.total_amount}")

    @property
    def discount(self) -> DiscountSnapshot | None:
        return self.coupon or self.campaign

    @property
    def refundable_amount(self) -> int:
        return self.total_amount - self.payment.refunded_amount


def history_entry(
    status: str, at: datetime, note: str | None = None, actor: str = "system"
) -> dict[str, Any]:
    return {"status": status, "at": at.isoformat(), "note": note, "actor": actor}


def admin_note(
    actor: str,
    at: datetime,
    action: str,
    before: dict[str, Any],
    after: dict[str, Any],
    note: str | None = None,
) -> dict[str, Any]:
    return {
        "actor": actor,
        "at": at.isoformat(),
        "action": action,
        "before": before,
        "after": after,
        "note": note,
    }
