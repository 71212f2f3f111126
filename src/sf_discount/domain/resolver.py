"""Discount Resolver: evaluates a coupon or campaign against an order.

Pure domain logic: no I/O. Usage counts are looked up by the caller and
passed in. Every rejection raises its own DiscountError subclass so the
reason reaches the customer unchanged.

Check order (coupon):
  1. inactive           → CouponInactiveError
  2. expired            → CouponExpiredError
  3. not started        → CouponNotStartedError
  4. global usage cap   → DiscountUsageExhaustedError
  5. min order amount   → MinOrderNotMetError
  6. user targeting     → DiscountNotApplicableError
  7. per-user usage cap → DiscountUserLimitReachedError
"""
import logging
from datetime import datetime

from src.sf_common.cents import percentage_of
from src.sf_common.enums import DiscountSource, DiscountType
from src.sf_common.errors import (
    CampaignNotEligibleError,
    CouponExpiredError,
    CouponInactiveError,
    CouponNotStartedError,
    DiscountError,
    DiscountNotApplicableError,
    DiscountUsageExhaustedError,
    DiscountUserLimitReachedError,
    MinOrderNotMetError,
)
from src.sf_discount.domain.models import Campaign, Coupon, DiscountSnapshot

logger = logging.getLogger(__name__)


def compute_discount(
    discount_type: str,
    value: int,
    base: int,
    max_discount_amount: int | None = None,
    shipping_cost: int = 0,
) -> int:
    """Return the discount in cents.

    percentage:    floor(base * value / 100)
    fixed:         value
    free_shipping: shipping_cost
    The result is capped at max_discount_amount (when set) and never exceeds
    what it discounts (base for percentage/fixed, shipping for free_shipping),
    which keeps the order total non-negative.
    """
    if discount_type == DiscountType.PERCENTAGE:
        amount = percentage_of(base, min(value, 100))
        ceiling = base
    elif discount_type == DiscountType.FIXED:
        amount = value
        ceiling = base
    elif discount_type == DiscountType.FREE_SHIPPING:
        amount = shipping_cost
        ceiling = shipping_cost
    else:
        raise ValueError(f"Unknown discount type: {discount_type}")

    if max_discount_amount:
        amount = min(amount, max_discount_amount)
    return max(0, min(amount, ceiling))


def _check_user_targeting(
    name: str, user_id: str, applicable: list[str], excluded: list[str]
) -> None:
    if user_id in excluded:
        raise DiscountNotApplicableError(name)
    if applicable and user_id not in applicable:
        raise DiscountNotApplicableError(name)


class DiscountResolver:
    def evaluate_coupon(
        self,
        coupon: Coupon,
        user_id: str,
        subtotal: int,
        user_usage_count: int,
        now: datetime,
    ) -> DiscountSnapshot:
        if not coupon.is_active:
            raise CouponInactiveError(coupon.code)
        if coupon.expires_at is not None and now > coupon.expires_at:
            raise CouponExpiredError(coupon.code)
        if coupon.starts_at is not None and now < coupon.starts_at:
            raise CouponNotStartedError(coupon.code)
        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            raise DiscountUsageExhaustedError(coupon.code)
        if subtotal < coupon.min_order_amount:
            raise MinOrderNotMetError(coupon.min_order_amount, subtotal)
        _check_user_targeting(
            coupon.code, user_id, coupon.applicable_user_ids, coupon.excluded_user_ids
        )
        if (
            coupon.usage_limit_per_user is not None
            and user_usage_count >= coupon.usage_limit_per_user
        ):
            raise DiscountUserLimitReachedError(coupon.code)

        amount = compute_discount(
            coupon.discount_type, coupon.value, subtotal, coupon.max_discount_amount
        )
        return DiscountSnapshot(
            source=DiscountSource.COUPON.value,
            source_id=coupon.id,
            name=coupon.code,
            discount_type=coupon.discount_type,
            value=coupon.value,
            amount=amount,
        )

    def evaluate_campaign(
        self,
        campaign: Campaign,
        user_id: str,
        subtotal: int,
        item_count: int,
        shipping_cost: int,
        user_usage_count: int,
        now: datetime,
    ) -> DiscountSnapshot:
        name = campaign.name
        if not campaign.is_active:
            raise CampaignNotEligibleError(name, "campaign is not active")
        if campaign.ends_at is not None and now > campaign.ends_at:
            raise CampaignNotEligibleError(name, "campaign has ended")
        if campaign.starts_at is not None and now < campaign.starts_at:
            raise CampaignNotEligibleError(name, "campaign has not started")
        if campaign.usage_limit is not None and campaign.total_uses >= campaign.usage_limit:
            raise DiscountUsageExhaustedError(name)
        if subtotal < campaign.min_order_amount:
            raise MinOrderNotMetError(campaign.min_order_amount, subtotal)
        if campaign.max_order_amount is not None and subtotal > campaign.max_order_amount:
            raise CampaignNotEligibleError(
                name, f"order exceeds {campaign.max_order_amount} cents"
            )
        if item_count < campaign.min_product_count:
            raise CampaignNotEligibleError(
                name, f"requires at least {campaign.min_product_count} items"
            )
        if campaign.max_product_count is not None and item_count > campaign.max_product_count:
            raise CampaignNotEligibleError(
                name, f"allows at most {campaign.max_product_count} items"
            )
        _check_user_targeting(
            name, user_id, campaign.applicable_user_ids, campaign.excluded_user_ids
        )
        if (
            campaign.usage_limit_per_user is not None
            and user_usage_count >= campaign.usage_limit_per_user
        ):
            raise DiscountUserLimitReachedError(name)

        amount = compute_discount(
            campaign.discount_type,
            campaign.value,
            subtotal,
            campaign.max_discount_amount,
            shipping_cost,
        )
        return DiscountSnapshot(
            source=DiscountSource.CAMPAIGN.value,
            source_id=campaign.id,
            name=name,
            discount_type=campaign.discount_type,
            value=campaign.value,
            amount=amount,
        )

    def select_auto_campaign(
        self,
        campaigns: list[Campaign],
        user_id: str,
        subtotal: int,
        item_count: int,
        shipping_cost: int,
        usage_counts: dict[str, int],
        now: datetime,
    ) -> DiscountSnapshot | None:
        """Pick the highest-priority eligible auto-apply campaign.

        Ties on priority go to the larger discount, then to the lower id so
        the choice is deterministic. Campaigns worth nothing are skipped.
        """
        best: tuple[int, int, Campaign, DiscountSnapshot] | None = None
        for campaign in sorted(campaigns, key=lambda c: c.id):
            if not campaign.is_auto_apply:
                continue
            try:
                snapshot = self.evaluate_campaign(
                    campaign,
                    user_id,
                    subtotal,
                    item_count,
                    shipping_cost,
                    usage_counts.get(campaign.id, 0),
                    now,
                )
            except DiscountError as exc:
                logger.debug("Auto campaign skipped: id=%s reason=%s", campaign.id, exc.message)
                continue
            if snapshot.amount <= 0:
                continue
            rank = (campaign.priority, snapshot.amount)
            if best is None or rank > (best[0], best[1]):
                best = (campaign.priority, snapshot.amount, campaign, snapshot)
        return best[3] if best else None
