"""
User-specific notification functionality.

Deposit instructions, deposit confirmations and withdrawal updates.
"""

from decimal import Decimal

from app.models.deposit_intent import DepositIntent
from app.models.enums import ReviewStatus
from app.models.user import User
from app.models.withdrawal import Withdrawal


def fmt_amount(amount: Decimal) -> str:
    """Two-decimal rendering used in every message."""
    return f"{amount:.2f}"


class UserNotificationMixin:
    """
    Mixin for user-specific notification methods.

    Relies on ``send_to_user`` from the core service.
    """

    async def notify_deposit_instructions(
        self,
        user: User,
        intent: DepositIntent,
        address: str,
    ) -> bool:
        """
        Tell the user where to send and exactly how much.

        The amount is what identifies the deposit, so it is repeated
        verbatim and the user is warned not to round it.
        """
        body = (
            f"💰 Amount: exactly {fmt_amount(intent.expected_amount)} "
            f"{intent.coin}\n"
            f"🌐 Network: {intent.network}\n"
            f"📬 Address: {address}\n"
            f"⏰ Valid until: "
            f"{intent.expires_at.strftime('%Y-%m-%d %H:%M')} UTC\n\n"
            f"Send exactly this amount. A different amount cannot be "
            f"matched to your account."
        )
        return await self.send_to_user(user, "Deposit instructions", body)

    async def notify_deposit_confirmed(
        self,
        user: User,
        intent: DepositIntent,
        reward: Decimal | None,
    ) -> bool:
        """Confirm a settled deposit, mentioning the reward if one was paid."""
        body = (
            f"✅ Your deposit of {fmt_amount(intent.expected_amount)} "
            f"{intent.coin} has been confirmed."
        )
        if reward:
            body += (
                f"\n🎁 Reward credited: {fmt_amount(reward)} {intent.coin}."
                f"\nYour account is now eligible."
            )
        return await self.send_to_user(user, "Deposit confirmed", body)

    async def notify_withdrawal_submitted(
        self, user: User, withdrawal: Withdrawal
    ) -> bool:
        body = (
            f"💸 Amount: {fmt_amount(withdrawal.amount)} USDT\n"
            f"🌐 Network: {withdrawal.network}\n"
            f"📬 Address: {withdrawal.wallet_address}\n"
            f"🆔 Reference: {withdrawal.external_tx_id}\n\n"
            f"Your withdrawal is being processed."
        )
        return await self.send_to_user(user, "Withdrawal submitted", body)

    async def notify_withdrawal_review(
        self, user: User, withdrawal: Withdrawal
    ) -> bool:
        """Tell the owner the review status of a withdrawal."""
        if withdrawal.review_status == ReviewStatus.PENDING:
            state = "currently pending review"
        else:
            state = f"now {withdrawal.review_status}"
        body = (
            f"Your withdrawal #{withdrawal.id} of "
            f"{fmt_amount(withdrawal.amount)} USDT is {state}."
        )
        return await self.send_to_user(
            user, f"Withdrawal {withdrawal.review_status}", body
        )
