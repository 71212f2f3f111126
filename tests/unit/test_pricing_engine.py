"""Tests for sf_pricing.domain.engine: server-side pricing of a cart."""
from unittest.mock import AsyncMock

import pytest

from src.sf_common.errors import (
    CampaignNotFoundError,
    CouponNotFoundError,
    DiscountConflictError,
    MinOrderNotMetError,
    MissingBillingFieldsError,
    OutOfStockError,
    ProductNotFoundError,
)
from src.sf_pricing.domain.engine import PricingEngine, check_business_billing, merge_lines
from src.sf_pricing.domain.models import CartLine, PricingConfig, PricingRequest
from tests.factories import NOW, make_campaign, make_coupon, make_product

_CONFIG = PricingConfig(free_shipping_threshold=20000, shipping_fee=2500, currency="TRY")


def _make_engine(products=None, coupon=None, campaign=None, auto=None, usage=None):  # type: ignore[no-untyped-def]
    catalog = AsyncMock()
    catalog.get_products.return_value = {
        p.id: p for p in (products if products is not None else [make_product()])
    }
    discounts = AsyncMock()
    discounts.get_coupon_by_code.return_value = coupon
    discounts.get_campaign.return_value = campaign
    discounts.list_auto_apply_campaigns.return_value = auto or []
    discounts.user_usage_counts.return_value = usage or {}
    return PricingEngine(config=_CONFIG, catalog=catalog, discounts=discounts), catalog, discounts


def _request(qty: int = 2, **kwargs) -> PricingRequest:  # type: ignore[no-untyped-def]
    return PricingRequest(lines=[CartLine("prod-a", qty)], user_id="user-1", **kwargs)


class TestMergeLines:
    def test_merges_duplicates_in_order(self) -> None:
        merged = merge_lines([CartLine("a", 1), CartLine("b", 2), CartLine("a", 3)])
        assert merged == [CartLine("a", 4), CartLine("b", 2)]


class TestBusinessBilling:
    def test_individual_needs_nothing(self) -> None:
        check_business_billing(_request())

    def test_business_missing_both(self) -> None:
        with pytest.raises(MissingBillingFieldsError) as exc_info:
            check_business_billing(_request(customer_type="business"))
        assert "company_name" in exc_info.value.message
        assert "tax_number" in exc_info.value.message

    def test_business_blank_tax_number(self) -> None:
        with pytest.raises(MissingBillingFieldsError, match="tax_number"):
            check_business_billing(
                _request(customer_type="business", company_name="Acme", tax_number="  ")
            )


class TestPricingEngine:
    async def test_worked_example_without_discount(self) -> None:
        engine, _, _ = _make_engine()
        result = await engine.price(AsyncMock(), _request(), now=NOW)
        assert (result.subtotal, result.discount_amount, result.shipping_cost, result.total_amount) == (
            10000, 0, 2500, 12500
        )
        assert result.discount is None
        assert result.currency == "TRY"

    async def test_worked_example_with_save10(self) -> None:
        engine, _, _ = _make_engine(coupon=make_coupon())
        result = await engine.price(AsyncMock(), _request(coupon_code=" save10 "), now=NOW)
        assert result.discount_amount == 1000
        assert result.total_amount == 11500
        assert result.discount.name == "SAVE10"

    async def test_coupon_code_is_normalised(self) -> None:
        engine, _, discounts = _make_engine(coupon=make_coupon())
        await engine.price(AsyncMock(), _request(coupon_code=" save10 "), now=NOW)
        assert discounts.get_coupon_by_code.await_args.args[1] == "SAVE10"

    async def test_shipping_charged_below_threshold(self) -> None:
        engine, _, _ = _make_engine(products=[make_product(price=19900)])
        result = await engine.price(AsyncMock(), _request(qty=1), now=NOW)
        assert result.shipping_cost == 2500
        assert result.total_amount == 22400

    async def test_free_shipping_at_threshold(self) -> None:
        engine, _, _ = _make_engine(products=[make_product(price=20000)])
        result = await engine.price(AsyncMock(), _request(qty=1), now=NOW)
        assert result.shipping_cost == 0
        assert result.total_amount == 20000

    async def test_uses_server_price(self) -> None:
        engine, _, _ = _make_engine(products=[make_product(price=4321)])
        result = await engine.price(AsyncMock(), _request(qty=1), now=NOW)
        assert result.priced_items[0].unit_price == 4321

    async def test_unknown_product(self) -> None:
        engine, _, _ = _make_engine(products=[])
        with pytest.raises(ProductNotFoundError):
            await engine.price(AsyncMock(), _request(), now=NOW)

    async def test_inactive_product(self) -> None:
        engine, _, _ = _make_engine(products=[make_product(is_active=False)])
        with pytest.raises(ProductNotFoundError):
            await engine.price(AsyncMock(), _request(), now=NOW)

    async def test_out_of_stock(self) -> None:
        engine, _, _ = _make_engine(products=[make_product(stock_quantity=1)])
        with pytest.raises(OutOfStockError) as exc_info:
            await engine.price(AsyncMock(), _request(qty=2), now=NOW)
        assert exc_info.value.code == 2002

    async def test_merged_lines_checked_against_stock(self) -> None:
        engine, _, _ = _make_engine(products=[make_product(stock_quantity=3)])
        request = PricingRequest(
            lines=[CartLine("prod-a", 2), CartLine("prod-a", 2)], user_id="user-1"
        )
        with pytest.raises(OutOfStockError):
            await engine.price(AsyncMock(), request, now=NOW)

    async def test_untracked_stock_always_available(self) -> None:
        engine, _, _ = _make_engine(products=[make_product(stock_quantity=0, track_stock=False)])
        result = await engine.price(AsyncMock(), _request(qty=5), now=NOW)
        assert result.subtotal == 25000

    async def test_business_without_billing_fields(self) -> None:
        engine, _, _ = _make_engine()
        with pytest.raises(MissingBillingFieldsError):
            await engine.price(AsyncMock(), _request(customer_type="business"), now=NOW)

    async def test_quote_skips_billing_check(self) -> None:
        engine, _, _ = _make_engine()
        result = await engine.price(
            AsyncMock(), _request(customer_type="business", check_billing=False), now=NOW
        )
        assert result.total_amount == 12500

    async def test_coupon_and_campaign_conflict(self) -> None:
        engine, _, _ = _make_engine()
        with pytest.raises(DiscountConflictError):
            await engine.price(
                AsyncMock(), _request(coupon_code="SAVE10", campaign_id="camp-1"), now=NOW
            )

    async def test_unknown_coupon(self) -> None:
        engine, _, _ = _make_engine(coupon=None)
        with pytest.raises(CouponNotFoundError):
            await engine.price(AsyncMock(), _request(coupon_code="NOPE"), now=NOW)

    async def test_coupon_rejection_propagates(self) -> None:
        engine, _, _ = _make_engine(coupon=make_coupon(min_order_amount=50000))
        with pytest.raises(MinOrderNotMetError):
            await engine.price(AsyncMock(), _request(coupon_code="SAVE10"), now=NOW)

    async def test_explicit_campaign(self) -> None:
        engine, _, _ = _make_engine(campaign=make_campaign(is_auto_apply=False))
        result = await engine.price(AsyncMock(), _request(campaign_id="camp-1"), now=NOW)
        assert result.discount_amount == 500
        assert result.total_amount == 12000

    async def test_unknown_campaign(self) -> None:
        engine, _, _ = _make_engine(campaign=None)
        with pytest.raises(CampaignNotFoundError):
            await engine.price(AsyncMock(), _request(campaign_id="nope"), now=NOW)

    async def test_auto_campaign_applied(self) -> None:
        engine, _, _ = _make_engine(auto=[make_campaign()])
        result = await engine.price(AsyncMock(), _request(), now=NOW)
        assert result.discount.source == "campaign"
        assert result.total_amount == 12000

    async def test_auto_free_shipping(self) -> None:
        auto = [make_campaign(discount_type="free_shipping", value=0)]
        engine, _, _ = _make_engine(auto=auto)
        result = await engine.price(AsyncMock(), _request(), now=NOW)
        assert result.shipping_cost == 2500
        assert result.discount_amount == 2500
        assert result.total_amount == 10000

    async def test_coupon_suppresses_auto_campaign(self) -> None:
        engine, _, discounts = _make_engine(coupon=make_coupon(), auto=[make_campaign()])
        await engine.price(AsyncMock(), _request(coupon_code="SAVE10"), now=NOW)
        discounts.list_auto_apply_campaigns.assert_not_awaited()

    async def test_total_invariant(self) -> None:
        engine, _, _ = _make_engine(coupon=make_coupon(discount_type="fixed", value=999999))
        result = await engine.price(AsyncMock(), _request(coupon_code="SAVE10"), now=NOW)
        assert result.total_amount == result.subtotal + result.shipping_cost - result.discount_amount
        assert result.total_amount >= 0
