"""
Withdrawal tier checks module.

Tiered eligibility: the first withdrawal must be exactly
FIRST_WITHDRAWAL_AMOUNT; later ones need a referral reward and must fit
between MIN_WITHDRAWAL_AMOUNT and the cap for the user's category and
level bracket.
"""

from decimal import Decimal

from loguru import logger

from app.config.business_constants import (
    FIRST_WITHDRAWAL_AMOUNT,
    MIN_WITHDRAWAL_AMOUNT,
    get_withdrawal_cap,
)
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.repositories.withdrawal_repository import WithdrawalRepository
from app.repositories.withdrawal_submission_repository import (
    WithdrawalSubmissionRepository,
)


class TierChecksMixin:
    """Mixin providing tiered eligibility checks."""

    user_repo: UserRepository
    withdrawal_repo: WithdrawalRepository
    submission_repo: WithdrawalSubmissionRepository

    async def has_prior_withdrawal(self, user_id: int) -> bool:
        """
        Whether the user ever withdrew.

        Unresolved submissions count: they may have been executed.
        """
        if await self.withdrawal_repo.count_for_user(user_id):
            return True
        return bool(
            await self.submission_repo.count_uncompensated_for_user(user_id)
        )

    def check_first_withdrawal(
        self, amount: Decimal
    ) -> tuple[bool, str | None]:
        if amount != FIRST_WITHDRAWAL_AMOUNT:
            return False, (
                f"Your first withdrawal must be exactly "
                f"{FIRST_WITHDRAWAL_AMOUNT:.2f} USDT."
            )
        return True, None

    async def check_referral_requirement(
        self, user: User
    ) -> tuple[bool, str | None]:
        count = await self.user_repo.count_referral_rewards(user.id)
        if count < 1:
            return False, (
                "Referral required after first withdrawal: invite at least "
                "one user who completes a deposit."
            )
        return True, None

    def check_min_amount(self, amount: Decimal) -> tuple[bool, str | None]:
        if amount < MIN_WITHDRAWAL_AMOUNT:
            return False, (
                f"Minimum withdrawal is {MIN_WITHDRAWAL_AMOUNT:.2f} USDT."
            )
        return True, None

    def check_tier_cap(
        self, user: User, amount: Decimal
    ) -> tuple[bool, str | None, str | None]:
        """
        Check the amount against the (category, level) cap.

        Returns:
            Tuple of (is_valid, error_message, error_code)
        """
        cap = get_withdrawal_cap(user.category, user.level)
        if cap is None:
            logger.warning(
                "Withdrawal blocked: no tier for user",
                extra={
                    "user_id": user.id,
                    "category": user.category,
                    "level": user.level,
                },
            )
            return False, (
                "Withdrawals are not available for your category and level."
            ), "NO_TIER"
        if amount > cap:
            return False, (
                f"Maximum withdrawal for {user.category} level {user.level} "
                f"is {cap:.2f} USDT."
            ), "MAX_AMOUNT"
        return True, None, None
