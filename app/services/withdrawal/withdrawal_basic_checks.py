"""
Withdrawal basic checks module.

Request shape and balance checks:
- Amount check
- Address check
- Network check
- Balance check
"""

from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import (
    SUPPORTED_WITHDRAWAL_NETWORKS,
    normalize_network,
)
from app.repositories.user_repository import UserRepository


class BasicChecksMixin:
    """Mixin providing basic validation checks."""

    session: AsyncSession
    user_repo: UserRepository

    def check_amount(self, amount: Decimal) -> tuple[bool, str | None]:
        """
        Check that the amount is a positive number of cents.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if amount is None or not amount.is_finite() or amount <= 0:
            return False, "Withdrawal amount must be greater than zero."
        if amount != amount.quantize(Decimal("0.01")):
            return False, "Withdrawal amount can have at most two decimals."
        return True, None

    def check_address(self, address: str | None) -> tuple[bool, str | None]:
        if not address or not address.strip():
            return False, "Destination address is required."
        return True, None

    def check_network(self, network: str | None) -> tuple[bool, str | None]:
        """Only the networks in SUPPORTED_WITHDRAWAL_NETWORKS are accepted."""
        if normalize_network(network) is None:
            supported = ", ".join(sorted(SUPPORTED_WITHDRAWAL_NETWORKS))
            return False, (
                f"Unsupported network: {network or '-'}. "
                f"Supported: {supported}."
            )
        return True, None

    async def check_balance(
        self, user_id: int, amount: Decimal
    ) -> tuple[bool, str | None]:
        """
        Check the balance covers the amount.

        Args:
            user_id: User ID
            amount: Requested amount

        Returns:
            Tuple of (is_valid, error_message)
        """
        balance = await self.user_repo.get_balance(user_id)
        if balance is None or balance < amount:
            logger.warning(
                "Withdrawal blocked: insufficient balance",
                extra={
                    "user_id": user_id,
                    "available": str(balance),
                    "requested": str(amount),
                },
            )
            return False, (
                f"Insufficient balance. Available: "
                f"{(balance or Decimal('0')):.2f} USDT."
            )
        return True, None
