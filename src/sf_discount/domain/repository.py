"""Discount repository Protocol: coupon/campaign reads and the usage ledger."""
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_discount.domain.models import Campaign, Coupon, DiscountSnapshot


class DiscountRepositoryProtocol(Protocol):
    async def get_coupon_by_code(self, db: AsyncSession, code: str) -> Coupon | None: ...

    async def get_campaign(self, db: AsyncSession, campaign_id: str) -> Campaign | None: ...

    async def list_auto_apply_campaigns(
        self, db: AsyncSession, now: datetime
    ) -> list[Campaign]: ...

    async def user_usage_counts(
        self, db: AsyncSession, source: str, source_ids: list[str], user_id: str
    ) -> dict[str, int]: ...

    async def record_usage(
        self,
        db: AsyncSession,
        snapshot: DiscountSnapshot,
        user_id: str,
        order_id: str,
        order_amount: int,
    ) -> bool: ...
