"""Pydantic schemas for the sf_order API."""
from typing import Any, Literal

from pydantic import BaseModel, Field

from src.sf_common.cents import cents_to_display
from src.sf_common.datetime_utils import isoformat_or_none
from src.sf_discount.domain.models import DiscountSnapshot
from src.sf_order.domain.models import Address, Order, OrderItem
from src.sf_pricing.domain.models import CartLine, PricedItem, PricingResult

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class AddressIn(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=120)
    phone: str = Field(..., min_length=5, max_length=32)
    line1: str = Field(..., min_length=1, max_length=255)
    line2: str | None = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=80)
    district: str | None = Field(None, max_length=80)
    postal_code: str | None = Field(None, max_length=16)
    country: str = Field("TR", min_length=2, max_length=2)
    company_name: str | None = Field(None, max_length=200)
    tax_number: str | None = Field(None, max_length=32)
    tax_office: str | None = Field(None, max_length=80)

    def to_domain(self) -> Address:
        return Address(**self.model_dump())


class CartLineIn(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., gt=0, le=1000)

    def to_domain(self) -> CartLine:
        return CartLine(product_id=self.product_id, quantity=self.quantity)


class QuoteRequest(BaseModel):
    items: list[CartLineIn] = Field(..., min_length=1, max_length=100)
    customer_type: Literal["individual", "business"] = "individual"
    coupon_code: str | None = Field(None, max_length=64)
    campaign_id: str | None = Field(None, max_length=64)


class CreateOrderRequest(QuoteRequest):
    shipping_address: AddressIn
    billing_address: AddressIn | None = None  # defaults to the shipping address
    payment_method: Literal["credit_card", "bank_transfer"]
    consents: dict[str, bool] = Field(default_factory=dict)
    customer_note: str | None = Field(None, max_length=500)

    def billing(self) -> AddressIn:
        return self.billing_address or self.shipping_address


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class OrderItemResponse(BaseModel):
    product_id: str
    name: str
    sku: str
    product_type: str
    unit_price_cents: int
    original_price_cents: int
    quantity: int
    line_total_cents: int
    bundle_items: list[dict[str, Any]] = []


class DiscountResponse(BaseModel):
    source: str
    name: str
    discount_type: str
    value: int
    amount_cents: int


def _item_response(item: PricedItem | OrderItem) -> OrderItemResponse:
    return OrderItemResponse(
        product_id=item.product_id,
        name=item.name,
        sku=item.sku,
        product_type=item.product_type,
        unit_price_cents=item.unit_price,
        original_price_cents=item.original_price,
        quantity=item.quantity,
        line_total_cents=item.line_total,
        bundle_items=item.bundle_items,
    )


def _discount_response(discount: DiscountSnapshot | None) -> DiscountResponse | None:
    if discount is None:
        return None
    return DiscountResponse(
        source=discount.source,
        name=discount.name,
        discount_type=discount.discount_type,
        value=discount.value,
        amount_cents=discount.amount,
    )


class QuoteResponse(BaseModel):
    items: list[OrderItemResponse]
    subtotal_cents: int
    discount_amount_cents: int
    shipping_cost_cents: int
    total_amount_cents: int
    total_amount_display: str
    currency: str
    discount: DiscountResponse | None = None

    @classmethod
    def from_pricing(cls, result: PricingResult) -> "QuoteResponse":
        return cls(
            items=[_item_response(i) for i in result.priced_items],
            subtotal_cents=result.subtotal,
            discount_amount_cents=result.discount_amount,
            shipping_cost_cents=result.shipping_cost,
            total_amount_cents=result.total_amount,
            total_amount_display=cents_to_display(result.total_amount, result.currency),
            currency=result.currency,
            discount=_discount_response(result.discount),
        )


class PaymentResponse(BaseModel):
    method: str
    status: str
    transaction_id: str | None
    payment_date: str | None
    refunded_amount_cents: int


class OrderResponse(BaseModel):
    id: str
    order_number: str
    status: str
    items: list[OrderItemResponse]
    subtotal_cents: int
    discount_amount_cents: int
    shipping_cost_cents: int
    total_amount_cents: int
    total_amount_display: str
    currency: str
    discount: DiscountResponse | None
    payment: PaymentResponse
    shipping_address: dict[str, Any]
    billing_address: dict[str, Any]
    tracking: dict[str, Any] | None
    status_history: list[dict[str, Any]]
    created_at: str | None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            order_number=order.order_number,
            status=order.status,
            items=[_item_response(i) for i in order.items],
            subtotal_cents=order.subtotal,
            discount_amount_cents=order.discount_amount,
            shipping_cost_cents=order.shipping_cost,
            total_amount_cents=order.total_amount,
            total_amount_display=cents_to_display(order.total_amount, order.currency),
            currency=order.currency,
            discount=_discount_response(order.discount),
            payment=PaymentResponse(
                method=order.payment.method,
                status=order.payment.status,
                transaction_id=order.payment.transaction_id,
                payment_date=isoformat_or_none(order.payment.payment_date),
                refunded_amount_cents=order.payment.refunded_amount,
            ),
            shipping_address=order.shipping_address.to_dict(),
            billing_address=order.billing_address.to_dict(),
            tracking=order.tracking,
            status_history=order.status_history,
            created_at=isoformat_or_none(order.created_at),
        )


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    next_cursor: str | None = None
