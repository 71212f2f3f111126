"""Pricing Engine: turns cart lines into server-trusted order amounts.

Steps:
  1. Merge duplicate lines and refetch price/stock from the catalog
  2. Reject unknown/inactive products and insufficient stock
  3. Business customers must carry company name + tax number
  4. Shipping: free at or above the threshold, flat fee below
  5. Discount: coupon, else explicit campaign, else best auto-apply campaign
  6. total = subtotal + shipping - discount (never negative)
"""
import logging
from collections import OrderedDict
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_catalog.domain.repository import CatalogProtocol
from src.sf_catalog.infrastructure.persistence import CatalogRepository
from src.sf_common.datetime_utils import utc_now
from src.sf_common.enums import CustomerType, DiscountSource
from src.sf_common.errors import (
    CampaignNotFoundError,
    CouponNotFoundError,
    DiscountConflictError,
    InternalError,
    MissingBillingFieldsError,
    OutOfStockError,
    ProductNotFoundError,
)
from src.sf_discount.domain.models import DiscountSnapshot
from src.sf_discount.domain.repository import DiscountRepositoryProtocol
from src.sf_discount.domain.resolver import DiscountResolver
from src.sf_discount.infrastructure.persistence import DiscountRepository
from src.sf_pricing.domain.models import (
    CartLine,
    PricedItem,
    PricingConfig,
    PricingRequest,
    PricingResult,
)

logger = logging.getLogger(__name__)


def merge_lines(lines: list[CartLine]) -> list[CartLine]:
    """Collapse repeated product ids into one line, keeping first-seen order."""
    merged: OrderedDict[str, int] = OrderedDict()
    for line in lines:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return [CartLine(product_id=pid, quantity=qty) for pid, qty in merged.items()]


def check_business_billing(request: PricingRequest) -> None:
    if request.customer_type != CustomerType.BUSINESS:
        return
    missing = [
        name
        for name, value in (
            ("company_name", request.company_name),
            ("tax_number", request.tax_number),
        )
        if not (value and value.strip())
    ]
    if missing:
        raise MissingBillingFieldsError(missing)


class PricingEngine:
    def __init__(
        self,
        config: PricingConfig | None = None,
        catalog: CatalogProtocol | None = None,
        discounts: DiscountRepositoryProtocol | None = None,
        resolver: DiscountResolver | None = None,
    ) -> None:
        self._config = config or PricingConfig.from_settings()
        self._catalog: CatalogProtocol = catalog or CatalogRepository()
        self._discounts: DiscountRepositoryProtocol = discounts or DiscountRepository()
        self._resolver = resolver or DiscountResolver()

    @property
    def config(self) -> PricingConfig:
        return self._config

    async def price(
        self, db: AsyncSession, request: PricingRequest, now: datetime | None = None
    ) -> PricingResult:
        now = now or utc_now()
        if request.coupon_code and request.campaign_id:
            raise DiscountConflictError()

        items = await self._price_items(db, merge_lines(request.lines))
        if request.check_billing:
            check_business_billing(request)

        subtotal = sum(i.line_total for i in items)
        shipping_cost = self._config.shipping_cost_for(subtotal)
        item_count = sum(i.quantity for i in items)

        discount = await self._resolve_discount(
            db, request, subtotal, item_count, shipping_cost, now
        )
        discount_amount = discount.amount if discount else 0
        total = subtotal + shipping_cost - discount_amount
        if total < 0:
            # compute_discount caps at the discounted base, so this only trips on a bug
            raise InternalError(f"Negative order total: {subtotal}+{shipping_cost}-{discount_amount}")

        return PricingResult(
            subtotal=subtotal,
            discount_amount=discount_amount,
            shipping_cost=shipping_cost,
            total_amount=total,
            currency=self._config.currency,
            priced_items=items,
            discount=discount,
        )

    async def _price_items(self, db: AsyncSession, lines: list[CartLine]) -> list[PricedItem]:
        products = await self._catalog.get_products(db, [ln.product_id for ln in lines])
        items: list[PricedItem] = []
        for line in lines:
            product = products.get(line.product_id)
            if product is None or not product.is_active:
                raise ProductNotFoundError(line.product_id)
            if not product.available_for(line.quantity):
                raise OutOfStockError(product.name, line.quantity, product.stock_quantity)
            items.append(
                PricedItem(
                    product_id=product.id,
                    name=product.name,
                    sku=product.sku,
                    product_type=product.product_type,
                    unit_price=product.price,
                    original_price=product.original_price,
                    quantity=line.quantity,
                    bundle_items=list(product.bundle_items or []),
                )
            )
        return items

    async def _resolve_discount(
        self,
        db: AsyncSession,
        request: PricingRequest,
        subtotal: int,
        item_count: int,
        shipping_cost: int,
        now: datetime,
    ) -> DiscountSnapshot | None:
        if request.coupon_code:
            code = request.coupon_code.strip().upper()
            coupon = await self._discounts.get_coupon_by_code(db, code)
            if coupon is None:
                raise CouponNotFoundError(code)
            counts = await self._discounts.user_usage_counts(
                db, DiscountSource.COUPON.value, [coupon.id], request.user_id
            )
            return self._resolver.evaluate_coupon(
                coupon, request.user_id, subtotal, counts.get(coupon.id, 0), now
            )

        if request.campaign_id:
            campaign = await self._discounts.get_campaign(db, request.campaign_id)
            if campaign is None:
                raise CampaignNotFoundError(request.campaign_id)
            counts = await self._discounts.user_usage_counts(
                db, DiscountSource.CAMPAIGN.value, [campaign.id], request.user_id
            )
            return self._resolver.evaluate_campaign(
                campaign,
                request.user_id,
                subtotal,
                item_count,
                shipping_cost,
                counts.get(campaign.id, 0),
                now,
            )

        candidates = await self._discounts.list_auto_apply_campaigns(db, now)
        if not candidates:
            return None
        counts = await self._discounts.user_usage_counts(
            db, DiscountSource.CAMPAIGN.value, [c.id for c in candidates], request.user_id
        )
        selected = self._resolver.select_auto_campaign(
            candidates, request.user_id, subtotal, item_count, shipping_cost, counts, now
        )
        if selected:
            logger.info(
                "Auto campaign applied: user=%s campaign=%s amount=%d",
                request.user_id, selected.source_id, selected.amount,
            )
        return selected
