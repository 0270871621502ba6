"""
Ledger service.

All mutations of a user's balance, eligibility and points go through here.
Every change is one conditional UPDATE or a row-locked update, so the
settlement loop and concurrent withdrawal requests never lose each other's
writes. The service never commits; callers own the transaction.
"""

from datetime import date
from decimal import Decimal

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import (
    DAILY_CLAIM_LIMIT,
    DAILY_CLAIM_POINTS,
    POINTS_CONVERSION_RATE,
    calculate_level,
    points_to_value,
    referral_points_for_level,
)
from app.models.referral_reward import ReferralReward
from app.models.user import User
from app.repositories.referral_reward_repository import (
    ReferralRewardRepository,
)
from app.repositories.user_repository import UserRepository
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError


class LedgerService:
    """User ledger operations."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize ledger service.

        Args:
            session: Async database session
        """
        self.session = session
        self.user_repo = UserRepository(session)
        self.reward_repo = ReferralRewardRepository(session)

    async def get_balance(self, user_id: int) -> Decimal:
        """
        Get current balance.

        Raises:
            NotFoundError: Unknown user
        """
        balance = await self.user_repo.get_balance(user_id)
        if balance is None:
            raise NotFoundError(f"User {user_id} not found")
        return balance

    async def credit(self, user_id: int, amount: Decimal) -> None:
        """
        Atomically add amount to the user's balance.

        Raises:
            ValidationError: Negative amount
            NotFoundError: Unknown user
        """
        if amount < 0:
            raise ValidationError("Credit amount must not be negative")
        if amount == 0:
            return

        if not await self.user_repo.increment_balance(user_id, amount):
            raise NotFoundError(f"User {user_id} not found")

        logger.info(
            "Balance credited",
            extra={"user_id": user_id, "amount": str(amount)},
        )

    async def debit(self, user_id: int, amount: Decimal) -> bool:
        """
        Atomically subtract amount if the balance covers it.

        Returns:
            False when the balance is insufficient; nothing changes then
        """
        if amount <= 0:
            raise ValidationError("Debit amount must be positive")

        debited = await self.user_repo.decrement_balance_if_sufficient(
            user_id, amount
        )
        if debited:
            logger.info(
                "Balance debited",
                extra={"user_id": user_id, "amount": str(amount)},
            )
        else:
            logger.warning(
                "Debit refused: insufficient balance",
                extra={"user_id": user_id, "amount": str(amount)},
            )
        return debited

    async def grant_eligibility(
        self,
        user_id: int,
        reward: Decimal,
        category: str | None,
    ) -> bool:
        """
        Make the user eligible and credit the one-time reward.

        Returns:
            True if eligibility was granted by this call, False if the user
            was already eligible (no reward is credited then)
        """
        granted = await self.user_repo.mark_eligible(user_id, reward, category)
        if granted:
            logger.info(
                "Eligibility granted",
                extra={
                    "user_id": user_id,
                    "reward": str(reward),
                    "category": category,
                },
            )
        return granted

    async def award_points(self, user_id: int, points: int) -> int:
        """
        Add lifetime points and recompute the level.

        Returns:
            New level
        """
        stmt = (
            select(User.total_points_earned)
            .where(User.id == user_id)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        current = result.scalar_one_or_none()
        if current is None:
            raise NotFoundError(f"User {user_id} not found")

        total = current + points
        level = calculate_level(total)
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(total_points_earned=total, level=level)
            .execution_options(synchronize_session=False)
        )
        return level

    async def record_referral_reward(
        self,
        referrer_id: int,
        referred_user_id: int,
        amount: Decimal,
        points: int,
    ) -> ReferralReward:
        """Append an entry to the referrer's referral rewards."""
        return await self.reward_repo.create(
            referrer_id=referrer_id,
            referred_user_id=referred_user_id,
            amount=amount,
            points=points,
        )

    async def pay_referral_reward(
        self,
        referrer_id: int,
        referred_user_id: int,
        amount: Decimal,
    ) -> ReferralReward | None:
        """
        Pay the referrer for a referred user's first deposit.

        One level only: the referrer's own referrer gets nothing. Points
        depend on the referrer's level before the award and are added to
        both lifetime and unconverted referral points.

        Returns:
            The recorded reward, or None if the referrer no longer exists
        """
        stmt = select(User.level).where(User.id == referrer_id)
        result = await self.session.execute(stmt)
        referrer_level = result.scalar_one_or_none()
        if referrer_level is None:
            logger.warning(
                "Referrer not found for reward",
                extra={
                    "referrer_id": referrer_id,
                    "referred_user_id": referred_user_id,
                },
            )
            return None

        points = referral_points_for_level(referrer_level)
        await self.credit(referrer_id, amount)
        new_level = await self.award_points(referrer_id, points)
        await self.user_repo.add_referral_points(referrer_id, points)
        reward = await self.record_referral_reward(
            referrer_id, referred_user_id, amount, points
        )

        logger.info(
            "Referral reward paid",
            extra={
                "referrer_id": referrer_id,
                "referred_user_id": referred_user_id,
                "amount": str(amount),
                "points": points,
                "level": new_level,
            },
        )
        return reward

    async def count_referral_rewards(self, user_id: int) -> int:
        """Number of referral rewards earned by user."""
        return await self.user_repo.count_referral_rewards(user_id)

    async def set_eligibility(self, user_id: int, eligible: bool) -> bool:
        """
        Set eligibility by hand (admin action).

        No deposit reward is credited. When the user becomes eligible and
        has an eligible referrer not yet rewarded for them, the referrer
        earns referral points by level.

        Returns:
            True if the flag changed

        Raises:
            NotFoundError: Unknown user
        """
        changed = await self.user_repo.set_eligible(user_id, eligible)
        if not changed:
            stmt = select(User.id).where(User.id == user_id)
            if (await self.session.execute(stmt)).first() is None:
                raise NotFoundError(f"User {user_id} not found")
            return False

        logger.info(
            "Eligibility set by admin",
            extra={"user_id": user_id, "eligible": eligible},
        )
        if eligible:
            await self._reward_referrer_points(user_id)
        return True

    async def _reward_referrer_points(self, user_id: int) -> None:
        """Points-only referral reward for a manually qualified user."""
        stmt = select(User.referrer_id).where(User.id == user_id)
        referrer_id = (await self.session.execute(stmt)).scalar_one_or_none()
        if referrer_id is None:
            return

        stmt = select(User.eligible).where(User.id == referrer_id)
        referrer_eligible = (
            await self.session.execute(stmt)
        ).scalar_one_or_none()
        if not referrer_eligible:
            logger.info(
                "Referrer not eligible, no referral points",
                extra={"referrer_id": referrer_id, "referred_user_id": user_id},
            )
            return

        if await self.reward_repo.exists_for_pair(referrer_id, user_id):
            return
        await self.pay_referral_reward(referrer_id, user_id, Decimal("0"))

    async def claim_daily_points(
        self, user_id: int, today: date | None = None
    ) -> int:
        """
        Claim the daily points.

        Eligible users claim 20 points up to 5 times per UTC day. Points
        go to both unconverted daily points and lifetime points.

        Args:
            user_id: User ID
            today: UTC date of the claim, defaults to now

        Returns:
            Unconverted daily points after the claim

        Raises:
            NotFoundError: Unknown user
            ValidationError: User is not eligible
            ConflictError: Daily limit reached
        """
        today = today or utc_now().date()
        claimed = await self.user_repo.claim_daily_points(
            user_id, today, DAILY_CLAIM_POINTS, DAILY_CLAIM_LIMIT
        )
        if claimed is None:
            stmt = select(User.eligible).where(User.id == user_id)
            eligible = (await self.session.execute(stmt)).scalar_one_or_none()
            if eligible is None:
                raise NotFoundError(f"User {user_id} not found")
            if not eligible:
                raise ValidationError(
                    "User is not eligible for daily points",
                    code="not_eligible",
                )
            raise ConflictError(
                "Daily claim limit reached", code="daily_claim_limit"
            )

        total, daily_points = claimed
        await self.user_repo.set_level(user_id, calculate_level(total))

        logger.info(
            "Daily points claimed",
            extra={
                "user_id": user_id,
                "points": DAILY_CLAIM_POINTS,
                "daily_points": daily_points,
                "date": today.isoformat(),
            },
        )
        return daily_points

    async def convert_points(self, user_id: int) -> Decimal:
        """
        Convert all unconverted daily points.

        Returns:
            Converted value, floor(points / 4)
        """
        return await self._convert(user_id, "daily_points")

    async def convert_referral_points(self, user_id: int) -> Decimal:
        """
        Convert all unconverted referral points.

        Returns:
            Converted value, floor(points / 4)
        """
        return await self._convert(user_id, "referral_points")

    async def _convert(self, user_id: int, source: str) -> Decimal:
        stmt = select(getattr(User, source)).where(User.id == user_id)
        points = (await self.session.execute(stmt)).scalar_one_or_none()
        if points is None:
            raise NotFoundError(f"User {user_id} not found")
        if points < POINTS_CONVERSION_RATE:
            raise ValidationError(
                f"At least {POINTS_CONVERSION_RATE} points are needed "
                f"to convert",
                code="no_points",
            )

        value = points_to_value(points)
        if not await self.user_repo.convert_points(
            user_id, source, points, value
        ):
            raise ConflictError(
                "Points changed during conversion", code="points_changed"
            )

        logger.info(
            "Points converted",
            extra={
                "user_id": user_id,
                "source": source,
                "points": points,
                "value": str(value),
            },
        )
        return value
