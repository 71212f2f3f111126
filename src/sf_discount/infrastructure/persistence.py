"""DiscountRepository: raw SQL for coupons, campaigns and the usage ledger.

The ledger (discount_usages) is written only after a payment is confirmed.
Rows are unique per (source_type, source_id, order_id), so recording the
same order twice is a no-op and the coupon/campaign counters move once.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_common.enums import DiscountSource
from src.sf_common.id_generator import generate_id
from src.sf_discount.domain.models import Campaign, Coupon, DiscountSnapshot

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_GET_COUPON_SQL = text("""
    SELECT id, code, discount_type, value, min_order_amount, max_discount_amount,
           starts_at, expires_at, usage_limit, usage_limit_per_user, used_count,
           is_active, applicable_user_ids, excluded_user_ids
    FROM coupons WHERE code = :code
""")

_CAMPAIGN_COLUMNS = """
    id, name, campaign_type, discount_type, value, max_discount_amount,
    min_order_amount, max_order_amount, min_product_count, max_product_count,
    applicable_user_ids, excluded_user_ids, is_active, is_auto_apply, priority,
    starts_at, ends_at, usage_limit, usage_limit_per_user,
    total_uses, total_discount, total_order_value
"""

_GET_CAMPAIGN_SQL = text(f"SELECT {_CAMPAIGN_COLUMNS} FROM campaigns WHERE id = :id")

_LIST_AUTO_CAMPAIGNS_SQL = text(f"""
    SELECT {_CAMPAIGN_COLUMNS}
    FROM campaigns
    WHERE is_active = TRUE AND is_auto_apply = TRUE
      AND (starts_at IS NULL OR starts_at <= :now)
      AND (ends_at IS NULL OR ends_at >= :now)
    ORDER BY priority DESC, id
""")

_USER_USAGE_COUNTS_SQL = text("""
    SELECT source_id, COUNT(*) AS uses
    FROM discount_usages
    WHERE source_type = :source_type AND user_id = :user_id AND source_id IN :source_ids
    GROUP BY source_id
""").bindparams(bindparam("source_ids", expanding=True))

_INSERT_USAGE_SQL = text("""
    INSERT INTO discount_usages
        (id, source_type, source_id, user_id, order_id, order_amount, discount_amount)
    VALUES
        (:id, :source_type, :source_id, :user_id, :order_id, :order_amount, :discount_amount)
    ON CONFLICT (source_type, source_id, order_id) DO NOTHING
    RETURNING id
""")

_BUMP_COUPON_SQL = text("""
    UPDATE coupons SET used_count = used_count + 1 WHERE id = :id
""")

_BUMP_CAMPAIGN_SQL = text("""
    UPDATE campaigns
    SET total_uses = total_uses + 1,
        total_discount = total_discount + :discount_amount,
        total_order_value = total_order_value + :order_amount
    WHERE id = :id
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_coupon(row: Any) -> Coupon:
    return Coupon(
        id=row.id,
        code=row.code,
        discount_type=row.discount_type,
        value=row.value,
        min_order_amount=row.min_order_amount,
        max_discount_amount=row.max_discount_amount,
        starts_at=row.starts_at,
        expires_at=row.expires_at,
        usage_limit=row.usage_limit,
        usage_limit_per_user=row.usage_limit_per_user,
        used_count=row.used_count,
        is_active=row.is_active,
        applicable_user_ids=list(row.applicable_user_ids or []),
        excluded_user_ids=list(row.excluded_user_ids or []),
    )


def _row_to_campaign(row: Any) -> Campaign:
    return Campaign(
        id=row.id,
        name=row.name,
        campaign_type=row.campaign_type,
        discount_type=row.discount_type,
        value=row.value,
        max_discount_amount=row.max_discount_amount,
        min_order_amount=row.min_order_amount,
        max_order_amount=row.max_order_amount,
        min_product_count=row.min_product_count,
        max_product_count=row.max_product_count,
        applicable_user_ids=list(row.applicable_user_ids or []),
        excluded_user_ids=list(row.excluded_user_ids or []),
        is_active=row.is_active,
        is_auto_apply=row.is_auto_apply,
        priority=row.priority,
        starts_at=row.starts_at,
        ends_at=row.ends_at,
        usage_limit=row.usage_limit,
        usage_limit_per_user=row.usage_limit_per_user,
        total_uses=row.total_uses,
        total_discount=row.total_discount,
        total_order_value=row.total_order_value,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class DiscountRepository:
    """Concrete implementation of DiscountRepositoryProtocol using raw SQL."""

    async def get_coupon_by_code(self, db: AsyncSession, code: str) -> Coupon | None:
        result = await db.execute(_GET_COUPON_SQL, {"code": code.strip().upper()})
        row = result.fetchone()
        return _row_to_coupon(row) if row else None

    async def get_campaign(self, db: AsyncSession, campaign_id: str) -> Campaign | None:
        result = await db.execute(_GET_CAMPAIGN_SQL, {"id": campaign_id})
        row = result.fetchone()
        return _row_to_campaign(row) if row else None

    async def list_auto_apply_campaigns(
        self, db: AsyncSession, now: datetime
    ) -> list[Campaign]:
        result = await db.execute(_LIST_AUTO_CAMPAIGNS_SQL, {"now": now})
        return [_row_to_campaign(r) for r in result.fetchall()]

    async def user_usage_counts(
        self, db: AsyncSession, source: str, source_ids: list[str], user_id: str
    ) -> dict[str, int]:
        if not source_ids:
            return {}
        result = await db.execute(
            _USER_USAGE_COUNTS_SQL,
            {"source_type": source, "user_id": user_id, "source_ids": source_ids},
        )
        return {row.source_id: int(row.uses) for row in result.fetchall()}

    async def record_usage(
        self,
        db: AsyncSession,
        snapshot: DiscountSnapshot,
        user_id: str,
        order_id: str,
        order_amount: int,
    ) -> bool:
        """Append a ledger row; returns False if this order was already recorded."""
        result = await db.execute(
            _INSERT_USAGE_SQL,
            {
                "id": generate_id(),
                "source_type": snapshot.source,
                "source_id": snapshot.source_id,
                "user_id": user_id,
                "order_id": order_id,
                "order_amount": order_amount,
                "discount_amount": snapshot.amount,
            },
        )
        if result.fetchone() is None:
            return False

        if snapshot.source == DiscountSource.COUPON:
            await db.execute(_BUMP_COUPON_SQL, {"id": snapshot.source_id})
        else:
            await db.execute(
                _BUMP_CAMPAIGN_SQL,
                {
                    "id": snapshot.source_id,
                    "discount_amount": snapshot.amount,
                    "order_amount": order_amount,
                },
            )
        return True
