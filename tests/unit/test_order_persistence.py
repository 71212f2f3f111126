# tests/unit/test_order_persistence.py
"""Unit tests for OrderRepository using MagicMock AsyncSession."""
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.sf_order.infrastructure.persistence import OrderRepository
from tests.factories import NOW, make_address, make_item, make_order, make_snapshot


def _make_row(as_text: bool = False, **kwargs: Any) -> MagicMock:
    """Mock row with every selected orders column. as_text mimics JSONB returned as str."""
    enc = json.dumps if as_text else (lambda v: v)
    row = MagicMock()
    row.id = kwargs.get("id", "order-1")
    row.order_number = kwargs.get("order_number", "ORD-20260301-000001")
    row.user_id = kwargs.get("user_id", "user-1")
    row.customer_email = "ayse@example.com"
    row.customer_name = "Ayşe Yılmaz"
    row.customer_type = "individual"
    row.status = kwargs.get("status", "pending")
    row.currency = "TRY"
    row.subtotal = 10000
    row.discount_amount = kwargs.get("discount_amount", 0)
    row.shipping_cost = 2500
    row.total_amount = 12500 - row.discount_amount
    row.items = enc([make_item().to_dict()])
    row.shipping_address = enc(make_address().to_dict())
    row.billing_address = enc(make_address().to_dict())
    row.coupon = enc(kwargs["coupon"]) if "coupon" in kwargs else None
    row.campaign = None
    row.consents = enc({"terms": True})
    row.customer_note = None
    row.payment_method = kwargs.get("payment_method", "credit_card")
    row.payment_status = kwargs.get("payment_status", "pending")
    row.payment_transaction_id = kwargs.get("payment_transaction_id")
    row.payment_date = None
    row.refunded_amount = 0
    row.refund_date = None
    row.payment_details = enc(kwargs.get("payment_details", {}))
    row.refunds = enc([])
    row.status_history = enc([{"status": "pending", "note": "Order created"}])
    row.admin_notes = enc([])
    row.tracking = None
    row.confirmed_at = None
    row.shipped_at = None
    row.delivered_at = None
    row.cancelled_at = None
    row.returned_at = None
    row.created_at = NOW
    row.updated_at = NOW
    return row


def _db_returning(row: MagicMock | None) -> AsyncMock:
    db = AsyncMock()
    result = MagicMock()
    result.fetchone.return_value = row
    result.fetchall.return_value = [row] if row else []
    db.execute.return_value = result
    return db


class TestInsert:
    @pytest.mark.asyncio
    async def test_insert_serializes_snapshots(self) -> None:
        db = AsyncMock()
        order = make_order(coupon=make_snapshot(amount=1000), discount_amount=1000)
        await OrderRepository().insert(db, order)
        db.execute.assert_awaited_once()
        params = db.execute.await_args.args[1]
        assert params["order_number"] == "ORD-20260301-000001"
        assert params["total_amount"] == 11500
        assert json.loads(params["coupon"])["amount"] == 1000
        assert params["campaign"] is None
        assert json.loads(params["items"])[0]["unit_price"] == 5000


class TestReads:
    @pytest.mark.asyncio
    async def test_get_by_id_maps_row(self) -> None:
        db = _db_returning(_make_row())
        order = await OrderRepository().get_by_id(db, "order-1")
        assert order is not None
        assert order.id == "order-1"
        assert order.items[0].quantity == 2
        assert order.payment.method == "credit_card"
        assert order.shipping_address.city == "İstanbul"

    @pytest.mark.asyncio
    async def test_get_by_id_not_found(self) -> None:
        db = _db_returning(None)
        assert await OrderRepository().get_by_id(db, "missing") is None

    @pytest.mark.asyncio
    async def test_jsonb_as_text_is_decoded(self) -> None:
        coupon = make_snapshot(amount=1000).to_dict()
        db = _db_returning(
            _make_row(as_text=True, discount_amount=1000, coupon=coupon,
                      payment_details={"psp_status": "success"})
        )
        order = await OrderRepository().get_by_id(db, "order-1")
        assert order is not None
        assert order.coupon is not None
        assert order.coupon.amount == 1000
        assert order.payment.details == {"psp_status": "success"}
        assert order.consents == {"terms": True}

    @pytest.mark.asyncio
    async def test_get_by_transaction_id(self) -> None:
        db = _db_returning(_make_row(payment_transaction_id="SForder-1123"))
        order = await OrderRepository().get_by_transaction_id(db, "SForder-1123")
        assert order is not None
        assert order.payment.transaction_id == "SForder-1123"
        assert db.execute.await_args.args[1] == {"transaction_id": "SForder-1123"}

    @pytest.mark.asyncio
    async def test_list_by_user_passes_cursor(self) -> None:
        db = _db_returning(_make_row())
        orders = await OrderRepository().list_by_user(db, "user-1", None, "order-9", 21)
        assert len(orders) == 1
        params = db.execute.await_args.args[1]
        assert params["cursor_id"] == "order-9"
        assert params["limit"] == 21


class TestGuardedUpdates:
    @pytest.mark.asyncio
    async def test_apply_payment_outcome_lost_guard_returns_none(self) -> None:
        db = _db_returning(None)
        result = await OrderRepository().apply_payment_outcome(
            db, "order-1", expected_status="pending", payment_status="completed",
            status="confirmed", payment_date=NOW, details={}, history=[],
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_apply_payment_outcome_returns_updated_order(self) -> None:
        db = _db_returning(_make_row(status="confirmed", payment_status="completed"))
        result = await OrderRepository().apply_payment_outcome(
            db, "order-1", expected_status="pending", payment_status="completed",
            status="confirmed", payment_date=NOW, details={"psp_status": "success"},
            history=[{"status": "confirmed"}],
        )
        assert result is not None
        assert result.status == "confirmed"
        params = db.execute.await_args.args[1]
        assert params["expected_status"] == "pending"
        assert json.loads(params["details"]) == {"psp_status": "success"}
        assert json.loads(params["admin_notes"]) == []

    @pytest.mark.asyncio
    async def test_apply_refund_guards_on_refunded_amount(self) -> None:
        db = _db_returning(None)
        result = await OrderRepository().apply_refund(
            db, "order-1", expected_status="delivered", expected_refunded=0, amount=500,
            refund_record={"amount": 500}, payment_status="completed", status="delivered",
            refund_date=NOW, history=[], admin_notes=[],
        )
        assert result is None
        params = db.execute.await_args.args[1]
        assert params["expected_refunded"] == 0
        assert json.loads(params["refund"]) == [{"amount": 500}]

    @pytest.mark.asyncio
    async def test_transition_status_without_tracking(self) -> None:
        db = _db_returning(_make_row(status="processing"))
        await OrderRepository().transition_status(
            db, "order-1", expected_status="confirmed", status="processing", history=[],
        )
        params = db.execute.await_args.args[1]
        assert params["tracking"] is None
