"""Effects that follow a committed payment confirmation.

Run by whoever won the conditional update that completed the payment (the
callback reconciler or an admin bank transfer approval), so they run once
per order. Each step is its own failure domain: a stock row that fails to
update is logged and the remaining items still go through.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_catalog.domain.repository import CatalogProtocol
from src.sf_catalog.infrastructure.persistence import CatalogRepository
from src.sf_common.tasks import SideEffectDispatcher, dispatcher as default_dispatcher
from src.sf_discount.domain.repository import DiscountRepositoryProtocol
from src.sf_discount.infrastructure.persistence import DiscountRepository
from src.sf_notify.domain.ports import NotifierProtocol
from src.sf_notify.infrastructure.notifier import NotificationClient
from src.sf_order.domain.models import Order

logger = logging.getLogger(__name__)


class PaymentSettlement:
    def __init__(
        self,
        catalog: CatalogProtocol | None = None,
        discounts: DiscountRepositoryProtocol | None = None,
        notifier: NotifierProtocol | None = None,
        dispatcher: SideEffectDispatcher | None = None,
    ) -> None:
        self._catalog: CatalogProtocol = catalog or CatalogRepository()
        self._discounts: DiscountRepositoryProtocol = discounts or DiscountRepository()
        self._notifier: NotifierProtocol = notifier or NotificationClient()
        self._dispatcher = dispatcher or default_dispatcher

    async def payment_confirmed(self, db: AsyncSession, order: Order) -> None:
        await self.decrement_stock(db, order)
        await self.record_discount_usage(db, order)
        self._dispatcher.dispatch(
            f"payment-confirmation:{order.order_number}",
            self._notifier.send_payment_confirmation,
            order,
        )

    async def decrement_stock(self, db: AsyncSession, order: Order) -> None:
        for item in order.items:
            try:
                remaining = await self._catalog.decrement_stock(db, item.product_id, item.quantity)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.warning(
                    "Stock decrement failed: order=%s product=%s qty=%d",
                    order.order_number, item.product_id, item.quantity,
                    exc_info=True,
                )
                continue
            if remaining is None:
                logger.debug("Stock not tracked: product=%s", item.product_id)
            elif remaining == 0:
                logger.info("Product sold out: product=%s sku=%s", item.product_id, item.sku)

    async def record_discount_usage(self, db: AsyncSession, order: Order) -> None:
        snapshot = order.discount
        if snapshot is None:
            return
        try:
            recorded = await self._discounts.record_usage(
                db, snapshot, order.user_id, order.id, order.subtotal
            )
            await db.commit()
        except Exception:
            await db.rollback()
            logger.warning(
                "Discount usage not recorded: order=%s %s=%s",
                order.order_number, snapshot.source, snapshot.source_id,
                exc_info=True,
            )
            return
        if not recorded:
            logger.info("Discount usage already recorded: order=%s", order.order_number)
