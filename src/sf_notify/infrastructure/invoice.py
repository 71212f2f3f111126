"""Invoice draft writer.

Runs as a fire-and-forget side effect after order creation, so it opens its
own session instead of borrowing the request's. Drafts are unique per order.
"""
import json
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.sf_common.database import async_session_factory
from src.sf_common.id_generator import generate_id
from src.sf_order.domain.models import Order

logger = logging.getLogger(__name__)

_INSERT_DRAFT_SQL = text("""
    INSERT INTO invoice_drafts (id, order_id, order_number, customer_type,
        billing_address, lines, subtotal, discount_amount, shipping_cost,
        total_amount, currency)
    VALUES (:id, :order_id, :order_number, :customer_type,
        CAST(:billing_address AS JSONB), CAST(:lines AS JSONB), :subtotal,
        :discount_amount, :shipping_cost, :total_amount, :currency)
    ON CONFLICT (order_id) DO NOTHING
""")


class InvoiceDraftWriter:
    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] = async_session_factory
    ) -> None:
        self._session_factory = session_factory

    async def create_draft(self, order: Order) -> None:
        lines = [
            {
                "sku": i.sku,
                "name": i.name,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
                "line_total": i.line_total,
            }
            for i in order.items
        ]
        async with self._session_factory() as session:
            await session.execute(
                _INSERT_DRAFT_SQL,
                {
                    "id": generate_id(),
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "customer_type": order.customer_type,
                    "billing_address": json.dumps(order.billing_address.to_dict()),
                    "lines": json.dumps(lines),
                    "subtotal": order.subtotal,
                    "discount_amount": order.discount_amount,
                    "shipping_cost": order.shipping_cost,
                    "total_amount": order.total_amount,
                    "currency": order.currency,
                },
            )
            await session.commit()
        logger.info("Invoice draft created: order=%s", order.order_number)
