"""
User repository.

Data access layer for User model. Balance and eligibility changes are
issued as single conditional UPDATE statements so concurrent settlement
and withdrawal paths never overwrite each other.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.referral_reward import ReferralReward
from app.models.user import User
from app.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository with ledger queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> User | None:
        """
        Get user by email (case-insensitive).

        Args:
            email: Email address

        Returns:
            User or None
        """
        if not email:
            return None
        stmt = select(User).where(
            func.lower(User.email) == email.strip().lower()
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_telegram_id(self, telegram_id: int) -> User | None:
        """Get user by Telegram ID."""
        return await self.get_by(telegram_id=telegram_id)

    async def get_with_referral_rewards(self, user_id: int) -> User | None:
        """
        Get user with referral rewards eager loaded.

        Args:
            user_id: User ID

        Returns:
            User with referral_rewards loaded or None
        """
        stmt = (
            select(User)
            .where(User.id == user_id)
            .options(selectinload(User.referral_rewards))
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_balance(self, user_id: int) -> Decimal | None:
        """Read the current balance straight from the database."""
        stmt = select(User.balance).where(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def increment_balance(
        self, user_id: int, amount: Decimal
    ) -> bool:
        """
        Atomically add amount to the balance.

        Returns:
            True if the user row was updated
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(balance=User.balance + amount)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def decrement_balance_if_sufficient(
        self, user_id: int, amount: Decimal
    ) -> bool:
        """
        Atomically subtract amount when the balance covers it.

        Returns:
            False when the balance is insufficient or the user is unknown
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .where(User.balance >= amount)
            .values(balance=User.balance - amount)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_eligible(
        self,
        user_id: int,
        reward: Decimal,
        category: str | None,
    ) -> bool:
        """
        Flip eligibility and credit the one-time reward.

        Only applies while the user is not yet eligible, so the reward is
        paid at most once even when two settlements race.

        Returns:
            True if this call granted eligibility
        """
        values: dict = {
            "eligible": True,
            "balance": User.balance + reward,
        }
        if category:
            values["category"] = category

        stmt = (
            update(User)
            .where(User.id == user_id)
            .where(User.eligible == False)  # noqa: E712
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def set_eligible(self, user_id: int, eligible: bool) -> bool:
        """
        Set the eligibility flag by hand.

        Returns:
            True if the flag changed
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .where(User.eligible != eligible)
            .values(eligible=eligible)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def claim_daily_points(
        self,
        user_id: int,
        today: date,
        points: int,
        limit: int,
    ) -> tuple[int, int] | None:
        """
        Record one daily claim for an eligible user under today's limit.

        The claim counter restarts on a new UTC date. SET expressions see
        the row as it was before the update, so the counter and the date
        move together.

        Returns:
            (total_points_earned, daily_points) after the claim, or None
            when nothing was claimed
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .where(User.eligible == True)  # noqa: E712
            .where(
                or_(
                    User.last_daily_claim_date.is_(None),
                    User.last_daily_claim_date != today,
                    User.daily_claim_count < limit,
                )
            )
            .values(
                daily_claim_count=case(
                    (
                        User.last_daily_claim_date == today,
                        User.daily_claim_count + 1,
                    ),
                    else_=1,
                ),
                last_daily_claim_date=today,
                daily_points=User.daily_points + points,
                total_points_earned=User.total_points_earned + points,
            )
            .returning(User.total_points_earned, User.daily_points)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return row[0], row[1]

    async def set_level(self, user_id: int, level: int) -> None:
        """Store a recomputed level."""
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(level=level)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def add_referral_points(self, user_id: int, points: int) -> bool:
        """Atomically add unconverted referral points."""
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(referral_points=User.referral_points + points)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def convert_points(
        self,
        user_id: int,
        source: str,
        observed: int,
        value: Decimal,
    ) -> bool:
        """
        Zero an unconverted points column and add its converted value.

        Only applies while the column still holds the observed points, so
        a claim landing in between is never wiped and nothing converts
        twice.

        Args:
            user_id: User ID
            source: "daily_points" or "referral_points"
            observed: Points read before converting
            value: Converted value of the observed points

        Returns:
            True if the conversion was applied
        """
        column = getattr(User, source)
        stmt = (
            update(User)
            .where(User.id == user_id)
            .where(column == observed)
            .values(
                {
                    source: 0,
                    "converted_points_value": (
                        User.converted_points_value + value
                    ),
                }
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def count_referral_rewards(self, user_id: int) -> int:
        """Count referral rewards earned by user as referrer."""
        stmt = select(func.count(ReferralReward.id)).where(
            ReferralReward.referrer_id == user_id
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0
