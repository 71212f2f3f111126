"""Outbound side-effect ports: customer notifications and invoice drafts.

Both are called only through SideEffectDispatcher, after the triggering
state change is committed.
"""
from typing import Protocol

from src.sf_order.domain.models import Order


class NotifierProtocol(Protocol):
    async def send_order_confirmation(self, order: Order) -> None: ...

    async def send_payment_confirmation(self, order: Order) -> None: ...

    async def send_status_update(self, order: Order) -> None: ...


class InvoiceProtocol(Protocol):
    async def create_draft(self, order: Order) -> None: ...
