"""OrderRepository Protocol: interface contract for persistence layer.

Every mutating method is a single conditional UPDATE ... RETURNING. None
means the guard did not match (status moved on, or a concurrent writer got
there first); callers re-read and decide.
"""
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_order.domain.models import Order


class OrderRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, order: Order) -> None: ...

    async def get_by_id(self, db: AsyncSession, order_id: str) -> Order | None: ...

    async def get_by_transaction_id(
        self, db: AsyncSession, transaction_id: str
    ) -> Order | None: ...

    async def list_by_user(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[Order]: ...

    async def list_pending_bank_transfers(
        self, db: AsyncSession, limit: int
    ) -> list[Order]: ...

    async def start_payment(
        self,
        db: AsyncSession,
        order_id: str,
        method: str,
        transaction_id: str,
        details: dict[str, Any],
    ) -> Order | None: ...

    async def merge_payment_details(
        self, db: AsyncSession, order_id: str, method: str, details: dict[str, Any]
    ) -> Order | None: ...

    async def mark_payment_processing(
        self, db: AsyncSession, order_id: str, details: dict[str, Any]
    ) -> Order | None: ...

    async def apply_payment_outcome(
        self,
        db: AsyncSession,
        order_id: str,
        expected_status: str,
        payment_status: str,
        status: str,
        payment_date: datetime | None,
        details: dict[str, Any],
        history: list[dict[str, Any]],
        admin_notes: list[dict[str, Any]] | None = None,
    ) -> Order | None: ...

    async def transition_status(
        self,
        db: AsyncSession,
        order_id: str,
        expected_status: str,
        status: str,
        history: list[dict[str, Any]],
        admin_notes: list[dict[str, Any]] | None = None,
        tracking: dict[str, Any] | None = None,
    ) -> Order | None: ...

    async def apply_refund(
        self,
        db: AsyncSession,
        order_id: str,
        expected_status: str,
        expected_refunded: int,
        amount: int,
        refund_record: dict[str, Any],
        payment_status: str,
        status: str,
        refund_date: datetime,
        history: list[dict[str, Any]],
        admin_notes: list[dict[str, Any]],
    ) -> Order | None: ...
