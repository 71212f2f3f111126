"""OrderApplicationService: createOrder, quote and the customer's order reads.

createOrder:
  1. Required consent check (terms)
  2. Pricing Engine: server-side prices, stock, business billing, discount
  3. Order Builder: snapshot + order number allocation
  4. Commit: the order now exists with a valid number
  5. Fire-and-forget: confirmation notification, invoice draft
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_common.errors import ConsentRequiredError, OrderForbiddenError, OrderNotFoundError
from src.sf_common.tasks import SideEffectDispatcher, dispatcher as default_dispatcher
from src.sf_gateway.auth.dependencies import CurrentUser
from src.sf_notify.domain.ports import InvoiceProtocol, NotifierProtocol
from src.sf_notify.infrastructure.invoice import InvoiceDraftWriter
from src.sf_notify.infrastructure.notifier import NotificationClient
from src.sf_order.application.builder import Customer, OrderBuilder
from src.sf_order.application.schemas import (
    CreateOrderRequest,
    OrderListResponse,
    OrderResponse,
    QuoteRequest,
    QuoteResponse,
)
from src.sf_order.domain.models import Order
from src.sf_order.domain.repository import OrderRepositoryProtocol
from src.sf_order.infrastructure.persistence import OrderRepository
from src.sf_pricing.domain.engine import PricingEngine
from src.sf_pricing.domain.models import PricingRequest

logger = logging.getLogger(__name__)

REQUIRED_CONSENTS = ("terms",)


def _pricing_request(
    req: QuoteRequest,
    user_id: str,
    company_name: str | None = None,
    tax_number: str | None = None,
    check_billing: bool = True,
) -> PricingRequest:
    return PricingRequest(
        lines=[line.to_domain() for line in req.items],
        user_id=user_id,
        customer_type=req.customer_type,
        company_name=company_name,
        tax_number=tax_number,
        coupon_code=req.coupon_code,
        campaign_id=req.campaign_id,
        check_billing=check_billing,
    )


def ensure_can_view(order: Order, user: CurrentUser) -> None:
    if order.user_id != user.id and not user.is_admin:
        raise OrderForbiddenError(order.id)


class OrderApplicationService:
    def __init__(
        self,
        pricing: PricingEngine | None = None,
        builder: OrderBuilder | None = None,
        repo: OrderRepositoryProtocol | None = None,
        notifier: NotifierProtocol | None = None,
        invoices: InvoiceProtocol | None = None,
        dispatcher: SideEffectDispatcher | None = None,
    ) -> None:
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._pricing = pricing or PricingEngine()
        self._builder = builder or OrderBuilder(repo=self._repo)
        self._notifier: NotifierProtocol = notifier or NotificationClient()
        self._invoices: InvoiceProtocol = invoices or InvoiceDraftWriter()
        self._dispatcher = dispatcher or default_dispatcher

    async def quote(
        self, db: AsyncSession, req: QuoteRequest, user: CurrentUser
    ) -> QuoteResponse:
        # Preview only: business billing is validated at order creation
        result = await self._pricing.price(
            db, _pricing_request(req, user.id, check_billing=False)
        )
        return QuoteResponse.from_pricing(result)

    async def create_order(
        self, db: AsyncSession, req: CreateOrderRequest, user: CurrentUser
    ) -> OrderResponse:
        for consent in REQUIRED_CONSENTS:
            if not req.consents.get(consent):
                raise ConsentRequiredError(consent)

        billing = req.billing()
        try:
            pricing = await self._pricing.price(
                db, _pricing_request(req, user.id, billing.company_name, billing.tax_number)
            )
            order = self._builder.build(
                pricing,
                Customer(
                    user_id=user.id,
                    email=user.email,
                    name=user.name,
                    customer_type=req.customer_type,
                ),
                shipping_address=req.shipping_address.to_domain(),
                billing_address=billing.to_domain(),
                payment_method=req.payment_method,
                consents=req.consents,
                customer_note=req.customer_note,
            )
            order = await self._builder.persist(db, order)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Order created: id=%s number=%s user=%s total=%d",
            order.id, order.order_number, order.user_id, order.total_amount,
        )
        self._dispatcher.dispatch(
            f"order-confirmation:{order.order_number}",
            self._notifier.send_order_confirmation,
            order,
        )
        self._dispatcher.dispatch(
            f"invoice-draft:{order.order_number}", self._invoices.create_draft, order
        )
        return OrderResponse.from_domain(order)

    async def get_order(
        self, db: AsyncSession, order_id: str, user: CurrentUser
    ) -> OrderResponse:
        order = await self._repo.get_by_id(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        ensure_can_view(order, user)
        return OrderResponse.from_domain(order)

    async def list_orders(
        self,
        db: AsyncSession,
        user: CurrentUser,
        status: str | None,
        cursor: str | None,
        limit: int,
    ) -> OrderListResponse:
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        orders = await self._repo.list_by_user(db, user.id, status, cursor, limit + 1)
        has_more = len(orders) > limit
        page = orders[:limit]
        return OrderListResponse(
            orders=[OrderResponse.from_domain(o) for o in page],
            next_cursor=page[-1].id if has_more and page else None,
        )
