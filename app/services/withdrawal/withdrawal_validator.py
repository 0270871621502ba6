"""
Withdrawal validator.

Runs every withdrawal check in a fixed order and reports the first failure.
Nothing is mutated here.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.user_repository import UserRepository
from app.repositories.withdrawal_repository import WithdrawalRepository
from app.repositories.withdrawal_submission_repository import (
    WithdrawalSubmissionRepository,
)
from app.services.withdrawal.withdrawal_basic_checks import BasicChecksMixin
from app.services.withdrawal.withdrawal_tier_checks import TierChecksMixin


@dataclass
class ValidationResult:
    """Result of withdrawal validation."""

    is_valid: bool
    error_message: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls) -> "ValidationResult":
        """Create a successful validation result."""
        return cls(is_valid=True)

    @classmethod
    def error(
        cls, message: str, code: str | None = None
    ) -> "ValidationResult":
        """Create an error validation result."""
        return cls(is_valid=False, error_message=message, error_code=code)


class WithdrawalValidator(BasicChecksMixin, TierChecksMixin):
    """Validator for withdrawal requests."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize withdrawal validator.

        Args:
            session: Database session
        """
        self.session = session
        self.user_repo = UserRepository(session)
        self.withdrawal_repo = WithdrawalRepository(session)
        self.submission_repo = WithdrawalSubmissionRepository(session)

    async def validate_withdrawal_request(
        self,
        user_id: int,
        amount: Decimal,
        address: str | None,
        network: str | None,
    ) -> ValidationResult:
        """
        Run all validations and return result.

        Args:
            user_id: User ID
            amount: Withdrawal amount
            address: Destination address
            network: Requested network

        Returns:
            ValidationResult with is_valid and optional
            error_message/error_code
        """
        # 1. Request shape
        is_valid, error_msg = self.check_amount(amount)
        if not is_valid:
            return ValidationResult.error(error_msg, "INVALID_AMOUNT")

        is_valid, error_msg = self.check_address(address)
        if not is_valid:
            return ValidationResult.error(error_msg, "MISSING_ADDRESS")

        is_valid, error_msg = self.check_network(network)
        if not is_valid:
            return ValidationResult.error(error_msg, "UNSUPPORTED_NETWORK")

        user = await self.user_repo.get_by_id(user_id)
        if not user:
            return ValidationResult.error("User not found.", "USER_NOT_FOUND")

        # 2. Tiered eligibility
        if not await self.has_prior_withdrawal(user_id):
            is_valid, error_msg = self.check_first_withdrawal(amount)
            if not is_valid:
                return ValidationResult.error(
                    error_msg, "FIRST_WITHDRAWAL_AMOUNT"
                )
        else:
            is_valid, error_msg = await self.check_referral_requirement(user)
            if not is_valid:
                return ValidationResult.error(error_msg, "REFERRAL_REQUIRED")

            is_valid, error_msg = self.check_min_amount(amount)
            if not is_valid:
                return ValidationResult.error(error_msg, "MIN_AMOUNT")

            is_valid, error_msg, code = self.check_tier_cap(user, amount)
            if not is_valid:
                return ValidationResult.error(error_msg, code)

        # 3. Balance
        is_valid, error_msg = await self.check_balance(user_id, amount)
        if not is_valid:
            return ValidationResult.error(error_msg, "INSUFFICIENT_BALANCE")

        return ValidationResult.success()
