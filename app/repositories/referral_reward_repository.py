"""
Referral reward repository.

Data access layer for ReferralReward model.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.referral_reward import ReferralReward
from app.repositories.base import BaseRepository


class ReferralRewardRepository(BaseRepository[ReferralReward]):
    """Referral reward repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral reward repository."""
        super().__init__(ReferralReward, session)

    async def get_for_referrer(
        self, referrer_id: int
    ) -> list[ReferralReward]:
        """Get rewards earned by referrer in creation order."""
        stmt = (
            select(ReferralReward)
            .where(ReferralReward.referrer_id == referrer_id)
            .order_by(ReferralReward.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_total_for_referrer(self, referrer_id: int) -> Decimal:
        """Sum of amounts paid to referrer."""
        stmt = select(func.sum(ReferralReward.amount)).where(
            ReferralReward.referrer_id == referrer_id
        )
        result = await self.session.execute(stmt)
        return result.scalar() or Decimal("0")

    async def exists_for_pair(
        self, referrer_id: int, referred_user_id: int
    ) -> bool:
        """Check whether the referrer was already rewarded for this user."""
        stmt = select(ReferralReward.id).where(
            ReferralReward.referrer_id == referrer_id,
            ReferralReward.referred_user_id == referred_user_id,
        )
        result = await self.session.execute(stmt)
        return result.first() is not None
