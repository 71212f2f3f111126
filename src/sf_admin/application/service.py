"""FulfillmentService: admin-driven order transitions, bank transfer review, refunds.

Every write is validated against the order state machine first, then
applied with a conditional UPDATE guarded on the status (and, for refunds,
the refunded amount) that was read. A guard miss means another writer got
there first: the transaction is rolled back and the caller gets
ConcurrentModificationError (or the more specific error the re-read shows).
Each mutation leaves a before/after admin note.
"""
import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_admin.application.schemas import AdminOrderResponse, BulkReviewResponse, ReviewResultResponse
from src.sf_admin.domain.models import FulfillmentConfig, ReviewAction, ReviewResult
from src.sf_common.datetime_utils import utc_now
from src.sf_common.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RefundMethod,
    RefundStatus,
)
from src.sf_common.errors import (
    AppError,
    ConcurrentModificationError,
    InvalidRefundAmountError,
    InvalidTransitionError,
    OrderNotFoundError,
    PaymentAlreadyCompletedError,
    PaymentMethodMismatchError,
    PaymentNotPendingError,
    RefundExceedsBalanceError,
    RefundNotAllowedError,
)
from src.sf_common.id_generator import generate_id
from src.sf_common.tasks import SideEffectDispatcher, dispatcher as default_dispatcher
from src.sf_notify.domain.ports import NotifierProtocol
from src.sf_notify.infrastructure.notifier import NotificationClient
from src.sf_order.domain.models import Order, admin_note, history_entry
from src.sf_order.domain.repository import OrderRepositoryProtocol
from src.sf_order.domain.state_machine import (
    OrderEvent,
    can_transition,
    event_for_target,
    transition,
)
from src.sf_order.infrastructure.persistence import OrderRepository
from src.sf_payment.application.settlement import PaymentSettlement

logger = logging.getLogger(__name__)

_OPEN_PAYMENT_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value)


class FulfillmentService:
    def __init__(
        self,
        config: FulfillmentConfig | None = None,
        repo: OrderRepositoryProtocol | None = None,
        settlement: PaymentSettlement | None = None,
        notifier: NotifierProtocol | None = None,
        dispatcher: SideEffectDispatcher | None = None,
    ) -> None:
        self._config = config or FulfillmentConfig.from_settings()
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._settlement = settlement or PaymentSettlement()
        self._notifier: NotifierProtocol = notifier or NotificationClient()
        self._dispatcher = dispatcher or default_dispatcher

    # ------------------------------------------------------------------
    # Order status
    # ------------------------------------------------------------------

    async def update_order_status(
        self, db: AsyncSession, order_id: str, target: str, note: str | None, actor: str
    ) -> AdminOrderResponse:
        event = event_for_target(target)
        order = await self._get(db, order_id)
        next_status = transition(order.status, event).value

        now = utc_now()
        updated = await self._repo.transition_status(
            db,
            order.id,
            expected_status=order.status,
            status=next_status,
            history=[history_entry(next_status, now, note, actor)],
            admin_notes=[
                admin_note(actor, now, "status_change",
                           {"status": order.status}, {"status": next_status}, note)
            ],
        )
        updated = await self._commit_or_conflict(db, order, updated)

        logger.info(
            "Order status changed: order=%s %s->%s by=%s",
            order.order_number, order.status, next_status, actor,
        )
        self._notify_status(updated)
        return AdminOrderResponse.from_domain(updated)

    async def add_tracking(
        self,
        db: AsyncSession,
        order_id: str,
        tracking_number: str,
        carrier: str,
        estimated_delivery: date | None,
        actor: str,
    ) -> AdminOrderResponse:
        order = await self._get(db, order_id)
        if order.status == OrderStatus.PROCESSING.value:
            next_status = transition(order.status, OrderEvent.SHIP).value
        elif order.status == OrderStatus.SHIPPED.value:
            next_status = order.status  # correcting the tracking of a shipped order
        else:
            raise InvalidTransitionError(order.status, OrderEvent.SHIP.value)

        now = utc_now()
        tracking = {
            "tracking_number": tracking_number,
            "carrier": carrier,
            "tracking_url": self._config.tracking_url(carrier, tracking_number),
            "estimated_delivery": estimated_delivery.isoformat() if estimated_delivery else None,
            "added_at": now.isoformat(),
        }
        history = []
        if next_status != order.status:
            history.append(history_entry(next_status, now, f"Shipped with {carrier}", actor))

        updated = await self._repo.transition_status(
            db,
            order.id,
            expected_status=order.status,
            status=next_status,
            history=history,
            admin_notes=[
                admin_note(actor, now, "tracking_added",
                           {"status": order.status, "tracking": order.tracking},
                           {"status": next_status, "tracking": tracking})
            ],
            tracking=tracking,
        )
        updated = await self._commit_or_conflict(db, order, updated)

        logger.info(
            "Tracking added: order=%s carrier=%s number=%s",
            order.order_number, carrier, tracking_number,
        )
        if next_status != order.status:
            self._notify_status(updated)
        return AdminOrderResponse.from_domain(updated)

    # ------------------------------------------------------------------
    # Bank transfer review
    # ------------------------------------------------------------------

    async def approve_bank_transfer(
        self,
        db: AsyncSession,
        order_id: str,
        approved_amount: int | None,
        note: str | None,
        actor: str,
    ) -> AdminOrderResponse:
        order = await self._get(db, order_id)
        self._ensure_reviewable(order)
        next_status = transition(order.status, OrderEvent.PAYMENT_SUCCEEDED).value

        now = utc_now()
        received = order.total_amount if approved_amount is None else approved_amount
        details: dict = {
            "approved_by": actor,
            "approved_at": now.isoformat(),
            "approved_amount": received,
            "approval_note": note,
        }
        difference = received - order.total_amount
        if abs(difference) > self._config.bank_transfer_tolerance:
            # Approval is explicit, so it proceeds; the shortfall/excess is kept for accounting
            details["partial_payment"] = {
                "expected_amount": order.total_amount,
                "received_amount": received,
                "difference": difference,
            }
            logger.warning(
                "Bank transfer approved outside tolerance: order=%s expected=%d received=%d",
                order.order_number, order.total_amount, received,
            )

        updated = await self._repo.apply_payment_outcome(
            db,
            order.id,
            expected_status=order.status,
            payment_status=PaymentStatus.COMPLETED.value,
            status=next_status,
            payment_date=now,
            details=details,
            history=[history_entry(next_status, now, "Bank transfer approved", actor)],
            admin_notes=[
                admin_note(actor, now, "bank_transfer_approved",
                           {"status": order.status, "payment_status": order.payment.status},
                           {"status": next_status, "payment_status": PaymentStatus.COMPLETED.value,
                            "approved_amount": received},
                           note)
            ],
        )
        updated = await self._commit_or_conflict(db, order, updated)

        logger.info("Bank transfer approved: order=%s by=%s", order.order_number, actor)
        await self._settlement.payment_confirmed(db, updated)
        return AdminOrderResponse.from_domain(updated)

    async def reject_bank_transfer(
        self, db: AsyncSession, order_id: str, reason: str, actor: str
    ) -> AdminOrderResponse:
        order = await self._get(db, order_id)
        self._ensure_reviewable(order)
        next_status = transition(order.status, OrderEvent.PAYMENT_FAILED).value

        now = utc_now()
        updated = await self._repo.apply_payment_outcome(
            db,
            order.id,
            expected_status=order.status,
            payment_status=PaymentStatus.FAILED.value,
            status=next_status,
            payment_date=None,
            details={"rejected_by": actor, "rejected_at": now.isoformat(),
                     "rejection_reason": reason},
            history=[history_entry(next_status, now, f"Bank transfer rejected: {reason}", actor)],
            admin_notes=[
                admin_note(actor, now, "bank_transfer_rejected",
                           {"status": order.status, "payment_status": order.payment.status},
                           {"status": next_status, "payment_status": PaymentStatus.FAILED.value},
                           reason)
            ],
        )
        updated = await self._commit_or_conflict(db, order, updated)

        logger.info(
            "Bank transfer rejected: order=%s by=%s reason=%s", order.order_number, actor, reason
        )
        self._notify_status(updated)
        return AdminOrderResponse.from_domain(updated)

    async def bulk_review_bank_transfers(
        self,
        db: AsyncSession,
        order_ids: list[str],
        action: str,
        actor: str,
        note: str | None = None,
        reason: str | None = None,
    ) -> BulkReviewResponse:
        """Review each order independently; one failure does not stop the batch."""
        review = ReviewAction(action)
        results: list[ReviewResult] = []
        for order_id in dict.fromkeys(order_ids):
            try:
                if review is ReviewAction.APPROVE:
                    await self.approve_bank_transfer(db, order_id, None, note, actor)
                else:
                    await self.reject_bank_transfer(
                        db, order_id, reason or note or "Rejected in bulk review", actor
                    )
            except AppError as exc:
                await db.rollback()
                results.append(ReviewResult(order_id, False, exc.code, exc.message))
                continue
            results.append(ReviewResult(order_id, True))

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            "Bulk bank transfer review: action=%s ok=%d failed=%d by=%s",
            review.value, succeeded, len(results) - succeeded, actor,
        )
        return BulkReviewResponse(
            action=review.value,
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=[ReviewResultResponse.from_domain(r) for r in results],
        )

    async def list_pending_bank_transfers(
        self, db: AsyncSession, limit: int = 100
    ) -> list[AdminOrderResponse]:
        orders = await self._repo.list_pending_bank_transfers(db, limit)
        return [AdminOrderResponse.from_domain(o) for o in orders]

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    async def process_refund(
        self,
        db: AsyncSession,
        order_id: str,
        amount: int,
        reason: str,
        actor: str,
        method: str = RefundMethod.ORIGINAL.value,
    ) -> AdminOrderResponse:
        if amount <= 0:
            raise InvalidRefundAmountError(amount)
        order = await self._get(db, order_id)
        if order.payment.status != PaymentStatus.COMPLETED.value:
            raise RefundNotAllowedError(order.payment.status)
        refundable = order.refundable_amount
        if amount > refundable:
            raise RefundExceedsBalanceError(amount, refundable)

        fully_refunded = amount == refundable
        payment_status = PaymentStatus.COMPLETED.value
        next_status = order.status
        if fully_refunded:
            payment_status = PaymentStatus.REFUNDED.value
            if can_transition(order.status, OrderEvent.REFUND_COMPLETED):
                next_status = transition(order.status, OrderEvent.REFUND_COMPLETED).value

        now = utc_now()
        refund_record = {
            "id": generate_id(),
            "amount": amount,
            "reason": reason,
            "method": method,
            "status": RefundStatus.COMPLETED.value,
            "initiated_by": actor,
            "initiated_at": now.isoformat(),
        }
        history = []
        if next_status != order.status:
            history.append(history_entry(next_status, now, f"Refunded: {reason}", actor))

        updated = await self._repo.apply_refund(
            db,
            order.id,
            expected_status=order.status,
            expected_refunded=order.payment.refunded_amount,
            amount=amount,
            refund_record=refund_record,
            payment_status=payment_status,
            status=next_status,
            refund_date=now,
            history=history,
            admin_notes=[
                admin_note(actor, now, "refund",
                           {"refunded_amount": order.payment.refunded_amount,
                            "payment_status": order.payment.status, "status": order.status},
                           {"refunded_amount": order.payment.refunded_amount + amount,
                            "payment_status": payment_status, "status": next_status},
                           reason)
            ],
        )
        updated = await self._commit_or_conflict(db, order, updated)

        logger.info(
            "Refund processed: order=%s amount=%d total_refunded=%d full=%s by=%s",
            order.order_number, amount, updated.payment.refunded_amount, fully_refunded, actor,
        )
        if next_status != order.status:
            self._notify_status(updated)
        return AdminOrderResponse.from_domain(updated)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get(self, db: AsyncSession, order_id: str) -> Order:
        order = await self._repo.get_by_id(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    @staticmethod
    def _ensure_reviewable(order: Order) -> None:
        if order.payment.method != PaymentMethod.BANK_TRANSFER.value:
            raise PaymentMethodMismatchError(PaymentMethod.BANK_TRANSFER.value, order.payment.method)
        if order.payment.status == PaymentStatus.COMPLETED.value:
            raise PaymentAlreadyCompletedError(order.id)
        if order.payment.status not in _OPEN_PAYMENT_STATUSES:
            raise PaymentNotPendingError(order.id, order.payment.status)

    async def _commit_or_conflict(
        self, db: AsyncSession, order: Order, updated: Order | None
    ) -> Order:
        if updated is None:
            await db.rollback()
            logger.info("Admin update lost concurrent write: order=%s", order.order_number)
            raise ConcurrentModificationError(order.id)
        await db.commit()
        return updated

    def _notify_status(self, order: Order) -> None:
        self._dispatcher.dispatch(
            f"status-update:{order.order_number}:{order.status}",
            self._notifier.send_status_update,
            order,
        )
