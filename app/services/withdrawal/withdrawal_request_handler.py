"""
Withdrawal request handling module.

Validates a withdrawal request, reserves the funds through the outbox,
submits the transfer to the exchange and settles the outbox row according
to the outcome.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import normalize_network
from app.models.withdrawal import Withdrawal
from app.models.withdrawal_submission import WithdrawalSubmission
from app.repositories.user_repository import UserRepository
from app.services.exchange.base import ExchangeGateway
from app.services.exchange.errors import ExchangeError, ExchangeTimeoutError
from app.services.notification import NotificationService
from app.services.withdrawal.withdrawal_balance_manager import (
    WithdrawalBalanceManager,
)
from app.services.withdrawal.withdrawal_validator import WithdrawalValidator
from app.utils.datetime_utils import utc_now


@dataclass
class WithdrawalResult:
    """Outcome of a withdrawal request."""

    success: bool
    withdrawal: Withdrawal | None = None
    error_message: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, withdrawal: Withdrawal) -> "WithdrawalResult":
        return cls(success=True, withdrawal=withdrawal)

    @classmethod
    def failure(cls, message: str, code: str) -> "WithdrawalResult":
        return cls(success=False, error_message=message, error_code=code)


class WithdrawalRequestHandler:
    """Handles withdrawal request creation and submission."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: ExchangeGateway,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize withdrawal request handler.

        Args:
            session: Database session
            gateway: Exchange gateway used to submit transfers
            notifier: Notification service
            clock: Current time provider
        """
        self.session = session
        self.gateway = gateway
        self.notifier = notifier
        self.clock = clock
        self.user_repo = UserRepository(session)
        self.validator = WithdrawalValidator(session)
        self.balance_manager = WithdrawalBalanceManager(session)

    async def request_withdrawal(
        self,
        user_id: int,
        amount: Decimal,
        wallet_address: str | None,
        network: str | None,
    ) -> WithdrawalResult:
        """
        Request withdrawal with balance reservation.

        Args:
            user_id: User ID
            amount: Withdrawal amount
            wallet_address: Destination address
            network: Requested network

        Returns:
            WithdrawalResult; on failure error_code tells the reason
        """
        validation = await self.validator.validate_withdrawal_request(
            user_id, amount, wallet_address, network
        )
        if not validation.is_valid:
            logger.info(
                "Withdrawal request rejected",
                extra={
                    "user_id": user_id,
                    "amount": str(amount),
                    "code": validation.error_code,
                },
            )
            return WithdrawalResult.failure(
                validation.error_message, validation.error_code
            )

        address = wallet_address.strip()
        exchange_network = normalize_network(network)

        try:
            submission = await self.balance_manager.reserve_funds(
                user_id, amount, address, exchange_network, self.clock()
            )
            if submission is None:
                await self.session.rollback()
                return WithdrawalResult.failure(
                    "Insufficient balance.", "INSUFFICIENT_BALANCE"
                )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        return await self._submit(submission)

    async def _submit(
        self, submission: WithdrawalSubmission
    ) -> WithdrawalResult:
        """Call the exchange for a reserved submission."""
        submission_id = submission.id
        try:
            receipt = await self.gateway.create_withdrawal(
                submission.wallet_address,
                submission.amount,
                submission.network,
                client_order_id=submission.client_order_id,
            )
        except ExchangeTimeoutError as e:
            return await self._leave_ambiguous(submission, str(e))
        except ExchangeError as e:
            return await self._compensate(submission, e)
        except Exception as e:
            logger.exception(
                "Unexpected error submitting withdrawal",
                extra={"submission_id": submission.id},
            )
            return await self._leave_ambiguous(submission, repr(e))

        try:
            withdrawal = await self.balance_manager.mark_submitted(
                submission, receipt.id, self.clock()
            )
            await self.session.commit()
        except Exception:
            # Exchange accepted it; the reconciler records it from history
            await self.session.rollback()
            logger.exception(
                "Failed to record accepted withdrawal",
                extra={
                    "submission_id": submission_id,
                    "external_tx_id": receipt.id,
                },
            )
            return WithdrawalResult.failure(
                "Your withdrawal is being verified. Funds stay reserved "
                "until it is confirmed.",
                "PENDING_VERIFICATION",
            )

        await self._notify_submitted(withdrawal)
        return WithdrawalResult.ok(withdrawal)

    async def _compensate(
        self, submission: WithdrawalSubmission, error: ExchangeError
    ) -> WithdrawalResult:
        submission_id = submission.id
        logger.warning(
            "Exchange rejected withdrawal",
            extra={
                "submission_id": submission.id,
                "user_id": submission.user_id,
                "error": str(error),
                "code": error.code,
            },
        )
        try:
            await self.balance_manager.restore_balance(submission, str(error))
            await self.session.commit()
        except Exception:
            # Row stays reserved; the reconciler compensates it later
            await self.session.rollback()
            logger.exception(
                "Failed to compensate rejected withdrawal",
                extra={"submission_id": submission_id},
            )
        return WithdrawalResult.failure(
            "The exchange rejected the withdrawal. Your balance was "
            "restored, please try again later.",
            "EXCHANGE_REJECTED",
        )

    async def _leave_ambiguous(
        self, submission: WithdrawalSubmission, reason: str
    ) -> WithdrawalResult:
        submission_id = submission.id
        await self.notifier.notify_admins_submission_unresolved(submission)
        try:
            await self.balance_manager.mark_ambiguous(submission, reason)
            await self.session.commit()
        except Exception:
            # Row stays reserved, which the reconciler also picks up
            await self.session.rollback()
            logger.exception(
                "Failed to flag ambiguous withdrawal",
                extra={"submission_id": submission_id},
            )
        return WithdrawalResult.failure(
            "Your withdrawal is being verified. Funds stay reserved until "
            "it is confirmed.",
            "PENDING_VERIFICATION",
        )

    async def _notify_submitted(self, withdrawal: Withdrawal) -> None:
        try:
            user = await self.user_repo.get_by_id(withdrawal.user_id)
            if user is None:
                return
            await self.notifier.notify_withdrawal_submitted(user, withdrawal)
            await self.notifier.notify_admins_withdrawal(user, withdrawal)
        except Exception:
            logger.exception(
                "Failed to send withdrawal notifications",
                extra={"withdrawal_id": withdrawal.id},
            )
