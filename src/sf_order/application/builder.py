"""Order Builder: snapshots a priced cart into an Order and allocates its number.

Number allocation is optimistic: insert with a candidate number inside a
SAVEPOINT; on a unique violation of uq_orders_order_number roll back the
savepoint, draw a new number and retry. No lock is taken. After
max_attempts collisions the request fails with OrderNumberAllocationError
and nothing is persisted.
"""
import dataclasses
import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.sf_common.datetime_utils import utc_now
from src.sf_common.enums import DiscountSource, OrderStatus, PaymentStatus
from src.sf_common.errors import OrderNumberAllocationError
from src.sf_common.id_generator import OrderNumberGenerator, generate_id
from src.sf_order.domain.models import Address, Order, OrderItem, Payment, history_entry
from src.sf_order.domain.repository import OrderRepositoryProtocol
from src.sf_order.infrastructure.persistence import ORDER_NUMBER_CONSTRAINT, OrderRepository
from src.sf_pricing.domain.models import PricingResult

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Customer:
    user_id: str
    email: str
    name: str
    customer_type: str


def is_order_number_collision(exc: IntegrityError) -> bool:
    return ORDER_NUMBER_CONSTRAINT in str(exc.orig)


class OrderBuilder:
    def __init__(
        self,
        repo: OrderRepositoryProtocol | None = None,
        numbers: OrderNumberGenerator | None = None,
        max_attempts: int = settings.ORDER_NUMBER_MAX_ATTEMPTS,
    ) -> None:
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._numbers = numbers or OrderNumberGenerator()
        self._max_attempts = max_attempts

    def build(
        self,
        pricing: PricingResult,
        customer: Customer,
        shipping_address: Address,
        billing_address: Address,
        payment_method: str,
        consents: dict[str, bool],
        customer_note: str | None = None,
        now: datetime | None = None,
    ) -> Order:
        now = now or utc_now()
        discount = pricing.discount
        return Order(
            id=generate_id(),
            order_number=self._numbers.next(now),
            user_id=customer.user_id,
            customer_email=customer.email,
            customer_name=customer.name,
            customer_type=customer.customer_type,
            status=OrderStatus.PENDING.value,
            items=[
                OrderItem(
                    product_id=p.product_id,
                    name=p.name,
                    sku=p.sku,
                    product_type=p.product_type,
                    unit_price=p.unit_price,
                    original_price=p.original_price,
                    quantity=p.quantity,
                    bundle_items=list(p.bundle_items),
                )
                for p in pricing.priced_items
            ],
            subtotal=pricing.subtotal,
            discount_amount=pricing.discount_amount,
            shipping_cost=pricing.shipping_cost,
            total_amount=pricing.total_amount,
            currency=pricing.currency,
            payment=Payment(method=payment_method, status=PaymentStatus.PENDING.value),
            shipping_address=shipping_address,
            billing_address=billing_address,
            coupon=discount if discount and discount.source == DiscountSource.COUPON else None,
            campaign=discount if discount and discount.source == DiscountSource.CAMPAIGN else None,
            consents=dict(consents),
            customer_note=customer_note,
            status_history=[
                history_entry(OrderStatus.PENDING.value, now, "Order created", customer.user_id)
            ],
            created_at=now,
            updated_at=now,
        )

    async def persist(self, db: AsyncSession, order: Order) -> Order:
        """Insert the order, regenerating its number on collision. Caller commits."""
        for attempt in range(1, self._max_attempts + 1):
            try:
                async with db.begin_nested():
                    await self._repo.insert(db, order)
                return order
            except IntegrityError as exc:
                if not is_order_number_collision(exc):
                    raise
                logger.info(
                    "Order number collision: number=%s attempt=%d/%d",
                    order.order_number, attempt, self._max_attempts,
                )
                order = dataclasses.replace(order, order_number=self._numbers.next())
        logger.error("Order number allocation exhausted: order_id=%s", order.id)
        raise OrderNumberAllocationError(self._max_attempts)
