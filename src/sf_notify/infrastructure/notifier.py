"""HTTP client for the notification service.

Templates and delivery belong to the notification service; this client only
posts the template name and the order facts it needs. With NOTIFICATION_URL
unset (local dev, tests) messages are logged and not sent.
"""
import logging
from typing import Any

import httpx

from config.settings import settings
from src.sf_common.cents import cents_to_display
from src.sf_order.domain.models import Order

logger = logging.getLogger(__name__)


def _order_payload(order: Order) -> dict[str, Any]:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "payment_status": order.payment.status,
        "payment_method": order.payment.method,
        "total": cents_to_display(order.total_amount, order.currency),
        "items": [{"name": i.name, "quantity": i.quantity} for i in order.items],
        "tracking": order.tracking,
    }


class NotificationClient:
    def __init__(
        self,
        base_url: str = settings.NOTIFICATION_URL,
        timeout: float = settings.NOTIFICATION_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def send_order_confirmation(self, order: Order) -> None:
        await self._send("order_confirmation", order)

    async def send_payment_confirmation(self, order: Order) -> None:
        await self._send("payment_confirmation", order)

    async def send_status_update(self, order: Order) -> None:
        await self._send(f"order_{order.status}", order)

    async def _send(self, template: str, order: Order) -> None:
        if not self._base_url:
            logger.info(
                "Notification not sent (no NOTIFICATION_URL): template=%s order=%s to=%s",
                template, order.order_number, order.customer_email,
            )
            return
        payload = {
            "template": template,
            "to": {"email": order.customer_email, "name": order.customer_name},
            "order": _order_payload(order),
        }
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            resp = await client.post("/notifications", json=payload)
            resp.raise_for_status()
        logger.info("Notification sent: template=%s order=%s", template, order.order_number)
