"""Unit tests for the discount usage ledger and catalog stock updates (mock AsyncSession)."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.sf_catalog.infrastructure.persistence import CatalogRepository
from src.sf_discount.infrastructure.persistence import DiscountRepository
from tests.factories import make_snapshot


def _result(row):  # type: ignore[no-untyped-def]
    result = MagicMock()
    result.fetchone.return_value = row
    return result


class TestRecordUsage:
    @pytest.mark.asyncio
    async def test_first_recording_bumps_coupon_counter(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = [_result(MagicMock()), _result(None)]

        recorded = await DiscountRepository().record_usage(
            db, make_snapshot(), "user-1", "order-1", 10000
        )

        assert recorded is True
        assert db.execute.await_count == 2
        ledger = db.execute.await_args_list[0].args[1]
        assert ledger["source_type"] == "coupon"
        assert ledger["order_amount"] == 10000
        assert ledger["discount_amount"] == 1000
        assert db.execute.await_args_list[1].args[1] == {"id": "coupon-1"}

    @pytest.mark.asyncio
    async def test_campaign_aggregates(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = [_result(MagicMock()), _result(None)]
        snapshot = make_snapshot(source="campaign", source_id="camp-1", amount=500)

        await DiscountRepository().record_usage(db, snapshot, "user-1", "order-1", 10000)

        bump = db.execute.await_args_list[1].args[1]
        assert bump == {"id": "camp-1", "discount_amount": 500, "order_amount": 10000}

    @pytest.mark.asyncio
    async def test_second_recording_for_same_order_is_noop(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _result(None)

        recorded = await DiscountRepository().record_usage(
            db, make_snapshot(), "user-1", "order-1", 10000
        )

        assert recorded is False
        db.execute.assert_awaited_once()


class TestDecrementStock:
    @pytest.mark.asyncio
    async def test_returns_remaining(self) -> None:
        db = AsyncMock()
        row = MagicMock()
        row.stock_quantity = 3
        db.execute.return_value = _result(row)
        assert await CatalogRepository().decrement_stock(db, "prod-a", 2) == 3

    @pytest.mark.asyncio
    async def test_untracked_product(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _result(None)
        assert await CatalogRepository().decrement_stock(db, "prod-a", 2) is None

    @pytest.mark.asyncio
    async def test_get_products_skips_query_for_empty_cart(self) -> None:
        db = AsyncMock()
        assert await CatalogRepository().get_products(db, []) == {}
        db.execute.assert_not_awaited()
