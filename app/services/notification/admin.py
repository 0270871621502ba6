"""
Admin notification functionality.

Operator alerts for settled deposits, degraded deposit addresses and
withdrawals that need attention.
"""

from decimal import Decimal

from app.models.deposit_intent import DepositIntent
from app.models.user import User
from app.models.withdrawal import Withdrawal
from app.models.withdrawal_submission import WithdrawalSubmission
from app.services.notification.user_notifications import fmt_amount


class AdminNotificationMixin:
    """
    Mixin for admin notification methods.

    Relies on ``notify_admins`` from the core service.
    """

    async def notify_admins_deposit_settled(
        self,
        user: User,
        intent: DepositIntent,
        reward: Decimal | None,
        referrer_id: int | None = None,
    ) -> int:
        """Inform operators about a settled deposit."""
        lines = [
            f"👤 User: {user.email} (id={user.id})",
            f"💰 Amount: {fmt_amount(intent.expected_amount)} {intent.coin}",
            f"🔗 TX: {intent.external_tx_id}",
            f"🏷 Category: {intent.category or user.category or '-'}",
        ]
        if reward:
            lines.append(f"🎁 Reward: {fmt_amount(reward)}")
        if referrer_id and reward:
            lines.append(f"🤝 Referrer {referrer_id} credited {fmt_amount(reward)}")
        return await self.notify_admins("Deposit settled", "\n".join(lines))

    async def notify_admins_fallback_address(
        self, user: User, intent: DepositIntent, address: str | None
    ) -> int:
        """
        Warn operators that a deposit intent uses the static address.

        Deposits to it are still matched by amount, but a changed exchange
        address will not be reflected.
        """
        body = (
            f"Exchange did not return a deposit address for intent "
            f"#{intent.id} (user {user.id}, "
            f"{fmt_amount(intent.expected_amount)} {intent.coin}).\n"
            f"Static fallback address issued: {address or 'NOT CONFIGURED'}"
        )
        return await self.notify_admins("⚠️ Fallback deposit address", body)

    async def notify_admins_withdrawal(
        self, user: User, withdrawal: Withdrawal
    ) -> int:
        body = (
            f"👤 User: {user.email} (id={user.id})\n"
            f"💸 Amount: {fmt_amount(withdrawal.amount)} USDT\n"
            f"🌐 Network: {withdrawal.network}\n"
            f"📬 Address: {withdrawal.wallet_address}\n"
            f"🆔 Exchange id: {withdrawal.external_tx_id}\n"
            f"Review status: {withdrawal.review_status}"
        )
        return await self.notify_admins("New withdrawal", body)

    async def notify_admins_transfer_failed(self, withdrawal: Withdrawal) -> int:
        """Alert operators that the exchange failed a transfer."""
        body = (
            f"Withdrawal #{withdrawal.id} (user {withdrawal.user_id}, "
            f"{fmt_amount(withdrawal.amount)} USDT) failed on the exchange "
            f"with status {withdrawal.external_status}.\n"
            f"Balance was NOT refunded automatically."
        )
        return await self.notify_admins("❌ Withdrawal transfer failed", body)

    async def notify_admins_submission_unresolved(
        self, submission: WithdrawalSubmission
    ) -> int:
        """Alert operators that a withdrawal submission outcome is unknown."""
        body = (
            f"Submission #{submission.id} (user {submission.user_id}, "
            f"{fmt_amount(submission.amount)} USDT, order "
            f"{submission.client_order_id}) timed out.\n"
            f"Funds stay reserved until reconciliation."
        )
        return await self.notify_admins("⏳ Withdrawal pending verification", body)
