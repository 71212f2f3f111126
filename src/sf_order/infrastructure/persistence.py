"""OrderRepository: raw SQL persistence implementation.

Snapshots (items, addresses, discount, history, notes, tracking, payment
details) live in JSONB columns and are passed in as json.dumps() strings.
"""
import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_discount.domain.models import DiscountSnapshot
from src.sf_order.domain.models import Address, Order, OrderItem, Payment

ORDER_NUMBER_CONSTRAINT = "uq_orders_order_number"

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_COLUMNS = """
    id, order_number, user_id, customer_email, customer_name, customer_type,
    status, currency, subtotal, discount_amount, shipping_cost, total_amount,
    items, shipping_address, billing_address, coupon, campaign, consents,
    customer_note, payment_method, payment_status, payment_transaction_id,
    payment_date, refunded_amount, refund_date, payment_details, refunds,
    status_history, admin_notes, tracking,
    confirmed_at, shipped_at, delivered_at, cancelled_at, returned_at,
    created_at, updated_at
"""

# Stamps the status date the first time an order enters that status.
# Inside UPDATE, the bare "status" column still holds the old value.
_STATUS_DATES_SET = """
    confirmed_at = CASE WHEN CAST(:status AS VARCHAR) = 'confirmed' AND status <> 'confirmed'
                        THEN NOW() ELSE confirmed_at END,
    shipped_at   = CASE WHEN CAST(:status AS VARCHAR) = 'shipped' AND status <> 'shipped'
                        THEN NOW() ELSE shipped_at END,
    delivered_at = CASE WHEN CAST(:status AS VARCHAR) = 'delivered' AND status <> 'delivered'
                        THEN NOW() ELSE delivered_at END,
    cancelled_at = CASE WHEN CAST(:status AS VARCHAR) = 'cancelled' AND status <> 'cancelled'
                        THEN NOW() ELSE cancelled_at END,
    returned_at  = CASE WHEN CAST(:status AS VARCHAR) = 'returned' AND status <> 'returned'
                        THEN NOW() ELSE returned_at END
"""

_INSERT_ORDER_SQL = text("""
    INSERT INTO orders (id, order_number, user_id, customer_email, customer_name,
        customer_type, status, currency, subtotal, discount_amount, shipping_cost,
        total_amount, items, shipping_address, billing_address, coupon, campaign,
        consents, customer_note, payment_method, payment_status, status_history)
    VALUES (:id, :order_number, :user_id, :customer_email, :customer_name,
        :customer_type, :status, :currency, :subtotal, :discount_amount, :shipping_cost,
        :total_amount, CAST(:items AS JSONB), CAST(:shipping_address AS JSONB),
        CAST(:billing_address AS JSONB), CAST(:coupon AS JSONB), CAST(:campaign AS JSONB),
        CAST(:consents AS JSONB), :customer_note, :payment_method, :payment_status,
        CAST(:status_history AS JSONB))
""")

_GET_ORDER_BY_ID_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders WHERE id = :id
""")

_GET_ORDER_BY_TRANSACTION_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders WHERE payment_transaction_id = :transaction_id
""")

_LIST_ORDERS_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE user_id = :user_id
      AND (CAST(:status AS TEXT) IS NULL OR status = :status)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_PENDING_TRANSFERS_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE payment_method = 'bank_transfer'
      AND payment_status IN ('pending', 'processing')
      AND status = 'pending'
    ORDER BY created_at
    LIMIT :limit
""")

_START_PAYMENT_SQL = text(f"""
    UPDATE orders
    SET payment_method = :method,
        payment_status = 'processing',
        payment_transaction_id = :transaction_id,
        payment_details = payment_details || CAST(:details AS JSONB)
    WHERE id = :id AND status = 'pending' AND payment_status = 'pending'
    RETURNING {_SELECT_COLUMNS}
""")

_MERGE_PAYMENT_DETAILS_SQL = text(f"""
    UPDATE orders
    SET payment_details = payment_details || CAST(:details AS JSONB)
    WHERE id = :id AND payment_method = :method
      AND payment_status IN ('pending', 'processing')
    RETURNING {_SELECT_COLUMNS}
""")

_MARK_PROCESSING_SQL = text(f"""
    UPDATE orders
    SET payment_status = 'processing',
        payment_details = payment_details || CAST(:details AS JSONB)
    WHERE id = :id AND payment_status = 'pending'
    RETURNING {_SELECT_COLUMNS}
""")

# The idempotency guard and the terminal write are one statement: of two
# concurrent first-time callbacks, exactly one gets a row back.
_APPLY_PAYMENT_OUTCOME_SQL = text(f"""
    UPDATE orders
    SET payment_status = :payment_status,
        payment_date = COALESCE(CAST(:payment_date AS TIMESTAMPTZ), payment_date),
        payment_details = payment_details || CAST(:details AS JSONB),
        status = :status,
        status_history = status_history || CAST(:history AS JSONB),
        admin_notes = admin_notes || CAST(:admin_notes AS JSONB),
        {_STATUS_DATES_SET}
    WHERE id = :id
      AND status = :expected_status
      AND payment_status IN ('pending', 'processing')
    RETURNING {_SELECT_COLUMNS}
""")

_TRANSITION_STATUS_SQL = text(f"""
    UPDATE orders
    SET status = :status,
        status_history = status_history || CAST(:history AS JSONB),
        admin_notes = admin_notes || CAST(:admin_notes AS JSONB),
        tracking = COALESCE(CAST(:tracking AS JSONB), tracking),
        {_STATUS_DATES_SET}
    WHERE id = :id AND status = :expected_status
    RETURNING {_SELECT_COLUMNS}
""")

_APPLY_REFUND_SQL = text(f"""
    UPDATE orders
    SET refunded_amount = refunded_amount + :amount,
        refund_date = :refund_date,
        refunds = refunds || CAST(:refund AS JSONB),
        payment_status = :payment_status,
        status = :status,
        status_history = status_history || CAST(:history AS JSONB),
        admin_notes = admin_notes || CAST(:admin_notes AS JSONB),
        {_STATUS_DATES_SET}
    WHERE id = :id
      AND status = :expected_status
      AND payment_status = 'completed'
      AND refunded_amount = :expected_refunded
    RETURNING {_SELECT_COLUMNS}
""")


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _json(value: Any) -> Any:
    """Raw text() queries may hand back JSONB as str depending on driver codecs."""
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def _dumps(value: Any) -> str | None:
    return None if value is None else json.dumps(value)


def _row_to_order(row: Any) -> Order:
    """Convert a DB result row to an Order domain object."""
    return Order(
        id=row.id,
        order_number=row.order_number,
        user_id=row.user_id,
        customer_email=row.customer_email,
        customer_name=row.customer_name,
        customer_type=row.customer_type,
        status=row.status,
        items=[OrderItem.from_dict(i) for i in _json(row.items)],
        subtotal=row.subtotal,
        discount_amount=row.discount_amount,
        shipping_cost=row.shipping_cost,
        total_amount=row.total_amount,
        currency=row.currency,
        payment=Payment(
            method=row.payment_method,
            status=row.payment_status,
            transaction_id=row.payment_transaction_id,
            payment_date=row.payment_date,
            refunded_amount=row.refunded_amount,
            refund_date=row.refund_date,
            details=_json(row.payment_details) or {},
            refunds=_json(row.refunds) or [],
        ),
        shipping_address=Address.from_dict(_json(row.shipping_address)),
        billing_address=Address.from_dict(_json(row.billing_address)),
        coupon=DiscountSnapshot.from_dict(_json(row.coupon)),
        campaign=DiscountSnapshot.from_dict(_json(row.campaign)),
        consents=_json(row.consents) or {},
        customer_note=row.customer_note,
        status_history=_json(row.status_history) or [],
        admin_notes=_json(row.admin_notes) or [],
        tracking=_json(row.tracking),
        confirmed_at=row.confirmed_at,
        shipped_at=row.shipped_at,
        delivered_at=row.delivered_at,
        cancelled_at=row.cancelled_at,
        returned_at=row.returned_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _one_or_none(result: Any) -> Order | None:
    row = result.fetchone()
    return _row_to_order(row) if row else None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class OrderRepository:
    """Concrete implementation of OrderRepositoryProtocol using raw SQL."""

    async def insert(self, db: AsyncSession, order: Order) -> None:
        """Raises IntegrityError naming ORDER_NUMBER_CONSTRAINT on a number collision."""
        await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "order_number": order.order_number,
                "user_id": order.user_id,
                "customer_email": order.customer_email,
                "customer_name": order.customer_name,
                "customer_type": order.customer_type,
                "status": order.status,
                "currency": order.currency,
                "subtotal": order.subtotal,
                "discount_amount": order.discount_amount,
                "shipping_cost": order.shipping_cost,
                "total_amount": order.total_amount,
                "items": _dumps([i.to_dict() for i in order.items]),
                "shipping_address": _dumps(order.shipping_address.to_dict()),
                "billing_address": _dumps(order.billing_address.to_dict()),
                "coupon": _dumps(order.coupon.to_dict() if order.coupon else None),
                "campaign": _dumps(order.campaign.to_dict() if order.campaign else None),
                "consents": _dumps(order.consents),
                "customer_note": order.customer_note,
                "payment_method": order.payment.method,
                "payment_status": order.payment.status,
                "status_history": _dumps(order.status_history),
            },
        )

    async def get_by_id(self, db: AsyncSession, order_id: str) -> Order | None:
        result = await db.execute(_GET_ORDER_BY_ID_SQL, {"id": order_id})
        return _one_or_none(result)

    async def get_by_transaction_id(
        self, db: AsyncSession, transaction_id: str
    ) -> Order | None:
        result = await db.execute(
            _GET_ORDER_BY_TRANSACTION_SQL, {"transaction_id": transaction_id}
        )
        return _one_or_none(result)

    async def list_by_user(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[Order]:
        result = await db.execute(
            _LIST_ORDERS_SQL,
            {"user_id": user_id, "status": status, "cursor_id": cursor_id, "limit": limit},
        )
        return [_row_to_order(r) for r in result.fetchall()]

    async def list_pending_bank_transfers(
        self, db: AsyncSession, limit: int
    ) -> list[Order]:
        result = await db.execute(_LIST_PENDING_TRANSFERS_SQL, {"limit": limit})
        return [_row_to_order(r) for r in result.fetchall()]

    async def start_payment(
        self,
        db: AsyncSession,
        order_id: str,
        method: str,
        transaction_id: str,
        details: dict[str, Any],
    ) -> Order | None:
        result = await db.execute(
            _START_PAYMENT_SQL,
            {
                "id": order_id,
                "method": method,
                "transaction_id": transaction_id,
                "details": _dumps(details),
            },
        )
        return _one_or_none(result)

    async def merge_payment_details(
        self, db: AsyncSession, order_id: str, method: str, details: dict[str, Any]
    ) -> Order | None:
        result = await db.execute(
            _MERGE_PAYMENT_DETAILS_SQL,
            {"id": order_id, "method": method, "details": _dumps(details)},
        )
        return _one_or_none(result)

    async def mark_payment_processing(
        self, db: AsyncSession, order_id: str, details: dict[str, Any]
    ) -> Order | None:
        result = await db.execute(
            _MARK_PROCESSING_SQL, {"id": order_id, "details": _dumps(details)}
        )
        return _one_or_none(result)

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
    ) -> Order | None:
        result = await db.execute(
            _APPLY_PAYMENT_OUTCOME_SQL,
            {
                "id": order_id,
                "expected_status": expected_status,
                "payment_status": payment_status,
                "status": status,
                "payment_date": payment_date,
                "details": _dumps(details),
                "history": _dumps(history),
                "admin_notes": _dumps(admin_notes or []),
            },
        )
        return _one_or_none(result)

    async def transition_status(
        self,
        db: AsyncSession,
        order_id: str,
        expected_status: str,
        status: str,
        history: list[dict[str, Any]],
        admin_notes: list[dict[str, Any]] | None = None,
        tracking: dict[str, Any] | None = None,
    ) -> Order | None:
        result = await db.execute(
            _TRANSITION_STATUS_SQL,
            {
                "id": order_id,
                "expected_status": expected_status,
                "status": status,
                "history": _dumps(history),
                "admin_notes": _dumps(admin_notes or []),
                "tracking": _dumps(tracking),
            },
        )
        return _one_or_none(result)

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
    ) -> Order | None:
        result = await db.execute(
            _APPLY_REFUND_SQL,
            {
                "id": order_id,
                "expected_status": expected_status,
                "expected_refunded": expected_refunded,
                "amount": amount,
                "refund": _dumps([refund_record]),
                "payment_status": payment_status,
                "status": status,
                "refund_date": refund_date,
                "history": _dumps(history),
                "admin_notes": _dumps(admin_notes),
            },
        )
        return _one_or_none(result)
