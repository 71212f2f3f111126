"""CallbackReconciler: applies signed PSP callbacks to orders exactly once.

  1. Verify the HMAC signature (constant time). Forged -> security log, REJECTED;
     a status outside success/failed/waiting -> UnsupportedCallbackStatusError
  2. Find the order by payment transaction id (the merchant oid)
  3. Payment already completed/failed/refunded -> DUPLICATE, nothing written
  4. waiting -> payment pending -> processing, ACKNOWLEDGED
  5. success/failed -> one conditional UPDATE (status + payment together).
     Only the caller that gets the row back runs the post-payment effects;
     a caller that loses re-reads and usually finds a DUPLICATE.

Duplicate and concurrent deliveries of the same callback therefore
decrement stock once.
"""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_common.datetime_utils import utc_now
from src.sf_common.enums import CallbackStatus, PaymentStatus
from src.sf_common.errors import (
    ConcurrentModificationError,
    InvalidTransitionError,
    OrderNotFoundError,
    UnsupportedCallbackStatusError,
)
from src.sf_order.domain.models import Order, history_entry
from src.sf_order.domain.repository import OrderRepositoryProtocol
from src.sf_order.domain.state_machine import OrderEvent, transition
from src.sf_order.infrastructure.persistence import OrderRepository
from src.sf_payment.application.settlement import PaymentSettlement
from src.sf_payment.domain.models import CallbackOutcome, CallbackPayload, PaymentConfig
from src.sf_payment.domain.signature import verify_callback_signature

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("sf.security")

PSP_ACTOR = "psp"
_KNOWN_STATUSES = frozenset(s.value for s in CallbackStatus)


class CallbackReconciler:
    def __init__(
        self,
        config: PaymentConfig | None = None,
        repo: OrderRepositoryProtocol | None = None,
        settlement: PaymentSettlement | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._config = config or PaymentConfig.from_settings()
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._settlement = settlement or PaymentSettlement()
        self._max_attempts = max_attempts

    def verify(self, payload: CallbackPayload) -> bool:
        return verify_callback_signature(
            self._config.merchant_key,
            self._config.merchant_salt,
            payload.merchant_oid,
            payload.status,
            payload.total_amount,
            payload.hash,
        )

    async def handle(self, db: AsyncSession, payload: CallbackPayload) -> CallbackOutcome:
        """Raises OrderNotFoundError for an unknown reference.

        Raises UnsupportedCallbackStatusError for a status outside
        success/failed/waiting; nothing is read or written.
        """
        if not self.verify(payload):
            security_logger.warning(
                "Forged payment callback rejected: oid=%s status=%s amount=%s",
                payload.merchant_oid, payload.status, payload.total_amount,
            )
            return CallbackOutcome.REJECTED
        if payload.status not in _KNOWN_STATUSES:
            logger.warning(
                "Callback with unsupported status ignored: oid=%s status=%r",
                payload.merchant_oid, payload.status,
            )
            raise UnsupportedCallbackStatusError(payload.status)

        order_id = None
        for attempt in range(1, self._max_attempts + 1):
            order = await self._repo.get_by_transaction_id(db, payload.merchant_oid)
            if order is None:
                logger.warning("Callback for unknown reference: oid=%s", payload.merchant_oid)
                raise OrderNotFoundError(payload.merchant_oid)
            order_id = order.id

            if order.payment.is_terminal:
                logger.info(
                    "Duplicate callback ignored: order=%s payment=%s status=%s",
                    order.order_number, order.payment.status, payload.status,
                )
                return CallbackOutcome.DUPLICATE

            if payload.status == CallbackStatus.WAITING.value:
                return await self._acknowledge_waiting(db, order, payload)

            updated = await self._apply_outcome(db, order, payload, utc_now())
            if updated is not None:
                await db.commit()
                logger.info(
                    "Payment %s: order=%s status=%s->%s",
                    updated.payment.status, updated.order_number, order.status, updated.status,
                )
                if updated.payment.status == PaymentStatus.COMPLETED.value:
                    await self._settlement.payment_confirmed(db, updated)
                return CallbackOutcome.APPLIED

            # End the transaction so the re-read sees the winner's commit
            await db.rollback()
            logger.info(
                "Callback lost concurrent update: order=%s attempt=%d/%d",
                order.order_number, attempt, self._max_attempts,
            )

        raise ConcurrentModificationError(order_id or payload.merchant_oid)

    async def _acknowledge_waiting(
        self, db: AsyncSession, order: Order, payload: CallbackPayload
    ) -> CallbackOutcome:
        if order.payment.status == PaymentStatus.PENDING.value:
            await self._repo.mark_payment_processing(
                db, order.id, {"psp_status": payload.status, "psp_waiting_at": utc_now().isoformat()}
            )
            await db.commit()
        logger.info("Payment waiting at PSP: order=%s", order.order_number)
        return CallbackOutcome.ACKNOWLEDGED

    async def _apply_outcome(
        self, db: AsyncSession, order: Order, payload: CallbackPayload, now: datetime
    ) -> Order | None:
        succeeded = payload.status == CallbackStatus.SUCCESS.value
        event = OrderEvent.PAYMENT_SUCCEEDED if succeeded else OrderEvent.PAYMENT_FAILED
        payment_status = PaymentStatus.COMPLETED if succeeded else PaymentStatus.FAILED

        try:
            next_status = transition(order.status, event).value
        except InvalidTransitionError:
            next_status = order.status
            if succeeded:
                logger.error(
                    "Payment captured for order in status %s, needs manual review: order=%s oid=%s",
                    order.status, order.order_number, payload.merchant_oid,
                )
            else:
                logger.warning(
                    "Payment failure for order in status %s, status kept: order=%s",
                    order.status, order.order_number,
                )

        details = self._callback_details(order, payload, now)
        history = []
        if next_status != order.status:
            note = "Payment received" if succeeded else "Payment failed"
            if payload.failed_reason_msg:
                note = f"{note}: {payload.failed_reason_msg}"
            history.append(history_entry(next_status, now, note, PSP_ACTOR))

        return await self._repo.apply_payment_outcome(
            db,
            order.id,
            expected_status=order.status,
            payment_status=payment_status.value,
            status=next_status,
            payment_date=now if succeeded else None,
            details=details,
            history=history,
        )

    def _callback_details(
        self, order: Order, payload: CallbackPayload, now: datetime
    ) -> dict[str, Any]:
        details: dict[str, Any] = {
            "psp_status": payload.status,
            "psp_total_amount": payload.total_amount,
            "callback_received_at": now.isoformat(),
        }
        if payload.payment_type:
            details["psp_payment_type"] = payload.payment_type
        if payload.failed_reason_code or payload.failed_reason_msg:
            details["failed_reason"] = {
                "code": payload.failed_reason_code,
                "message": payload.failed_reason_msg,
            }

        signed = payload.signed_amount()
        if payload.status == CallbackStatus.SUCCESS.value and signed != order.total_amount:
            logger.warning(
                "Callback amount mismatch: order=%s expected=%d signed=%s",
                order.order_number, order.total_amount, payload.total_amount,
            )
            details["amount_mismatch"] = {
                "expected_amount": order.total_amount,
                "received_amount": signed,
            }
        return details
