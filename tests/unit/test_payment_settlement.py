"""Unit tests for PaymentSettlement: post-payment stock and discount ledger updates."""
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.sf_payment.application.settlement import PaymentSettlement
from tests.factories import make_item, make_order, make_snapshot


def _make_settlement():  # type: ignore[no-untyped-def]
    catalog = MagicMock()
    catalog.decrement_stock = AsyncMock(return_value=5)
    discounts = MagicMock()
    discounts.record_usage = AsyncMock(return_value=True)
    notifier = MagicMock()
    dispatcher = MagicMock()
    settlement = PaymentSettlement(
        catalog=catalog, discounts=discounts, notifier=notifier, dispatcher=dispatcher
    )
    return settlement, catalog, discounts, notifier, dispatcher


def _two_item_order(**kwargs):  # type: ignore[no-untyped-def]
    items = [make_item(), make_item(product_id="prod-b", sku="SKU-B", quantity=1)]
    return make_order(items=items, **kwargs)


@pytest.fixture
def db():
    return AsyncMock()


@pytest.mark.asyncio
async def test_decrements_each_item(db):
    settlement, catalog, _, _, _ = _make_settlement()
    await settlement.payment_confirmed(db, _two_item_order())
    calls = [c.args[1:] for c in catalog.decrement_stock.await_args_list]
    assert calls == [("prod-a", 2), ("prod-b", 1)]
    assert db.commit.await_count == 2


@pytest.mark.asyncio
async def test_item_failure_does_not_stop_the_rest(db, caplog):
    settlement, catalog, _, _, dispatcher = _make_settlement()
    catalog.decrement_stock = AsyncMock(side_effect=[RuntimeError("deadlock"), 0])

    with caplog.at_level(logging.WARNING):
        await settlement.payment_confirmed(db, _two_item_order())

    assert catalog.decrement_stock.await_count == 2
    db.rollback.assert_awaited_once()
    assert any("Stock decrement failed" in r.message for r in caplog.records)
    dispatcher.dispatch.assert_called_once()


@pytest.mark.asyncio
async def test_records_discount_usage_against_subtotal(db):
    settlement, _, discounts, _, _ = _make_settlement()
    order = make_order(coupon=make_snapshot(), discount_amount=1000)
    await settlement.payment_confirmed(db, order)
    args = discounts.record_usage.await_args.args
    assert args[1].source_id == "coupon-1"
    assert args[2:] == ("user-1", "order-1", 10000)


@pytest.mark.asyncio
async def test_no_discount_skips_ledger(db):
    settlement, _, discounts, _, _ = _make_settlement()
    await settlement.payment_confirmed(db, make_order())
    discounts.record_usage.assert_not_awaited()


@pytest.mark.asyncio
async def test_ledger_failure_is_logged(db, caplog):
    settlement, _, discounts, _, dispatcher = _make_settlement()
    discounts.record_usage = AsyncMock(side_effect=RuntimeError("db down"))
    with caplog.at_level(logging.WARNING):
        await settlement.payment_confirmed(db, make_order(coupon=make_snapshot(), discount_amount=1000))
    assert any("Discount usage not recorded" in r.message for r in caplog.records)
    dispatcher.dispatch.assert_called_once()


@pytest.mark.asyncio
async def test_dispatches_payment_confirmation(db):
    settlement, _, _, notifier, dispatcher = _make_settlement()
    order = make_order()
    await settlement.payment_confirmed(db, order)
    label, fn, arg = dispatcher.dispatch.call_args.args
    assert label == "payment-confirmation:ORD-20260301-000001"
    assert fn is notifier.send_payment_confirmation
    assert arg is order
