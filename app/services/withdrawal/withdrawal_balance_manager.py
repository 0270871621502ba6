"""
Withdrawal balance manager.

Moves funds through the withdrawal outbox: reservation (debit plus a
``reserved`` submission), compensation (credit back, ``compensated``) and
recording a submission the exchange accepted (``submitted`` plus the
withdrawal record). Callers own the transaction.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import ReviewStatus, SubmissionState, TransferStatus
from app.models.withdrawal import Withdrawal
from app.models.withdrawal_submission import WithdrawalSubmission
from app.repositories.withdrawal_repository import WithdrawalRepository
from app.repositories.withdrawal_submission_repository import (
    WithdrawalSubmissionRepository,
)
from app.services.ledger import LedgerService
from app.utils.exceptions import ConflictError


class WithdrawalBalanceManager:
    """Manages balance operations for withdrawal requests."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize withdrawal balance manager.

        Args:
            session: Database session
        """
        self.session = session
        self.ledger = LedgerService(session)
        self.withdrawal_repo = WithdrawalRepository(session)
        self.submission_repo = WithdrawalSubmissionRepository(session)

    async def reserve_funds(
        self,
        user_id: int,
        amount: Decimal,
        wallet_address: str,
        network: str,
        now: datetime,
    ) -> WithdrawalSubmission | None:
        """
        Debit the balance and write the outbox row.

        Args:
            user_id: User ID
            amount: Amount to reserve
            wallet_address: Destination address
            network: Exchange network code
            now: Reservation timestamp

        Returns:
            The reserved submission, or None if the balance no longer
            covers the amount
        """
        if not await self.ledger.debit(user_id, amount):
            return None

        submission = await self.submission_repo.create(
            user_id=user_id,
            amount=amount,
            wallet_address=wallet_address,
            network=network,
            client_order_id=uuid.uuid4().hex,
            state=SubmissionState.RESERVED.value,
            created_at=now,
            updated_at=now,
        )

        logger.info(
            "Withdrawal funds reserved",
            extra={
                "user_id": user_id,
                "submission_id": submission.id,
                "client_order_id": submission.client_order_id,
                "amount": str(amount),
            },
        )
        return submission

    async def restore_balance(
        self, submission: WithdrawalSubmission, reason: str | None = None
    ) -> bool:
        """
        Compensate a submission the exchange did not execute.

        The state transition comes first so a submission is credited back
        at most once.

        Args:
            submission: Unresolved submission
            reason: Error recorded on the outbox row

        Returns:
            True if the balance was restored by this call
        """
        moved = await self.submission_repo.transition(
            submission.id, SubmissionState.COMPENSATED, last_error=reason
        )
        if not moved:
            logger.warning(
                "Submission already resolved, not compensating",
                extra={"submission_id": submission.id},
            )
            return False

        await self.ledger.credit(submission.user_id, submission.amount)

        logger.info(
            "Withdrawal compensated",
            extra={
                "user_id": submission.user_id,
                "submission_id": submission.id,
                "amount": str(submission.amount),
                "reason": reason,
            },
        )
        return True

    async def mark_ambiguous(
        self, submission: WithdrawalSubmission, reason: str
    ) -> bool:
        """Flag a submission whose exchange outcome is unknown."""
        moved = await self.submission_repo.transition(
            submission.id, SubmissionState.AMBIGUOUS, last_error=reason
        )
        if moved:
            logger.warning(
                "Withdrawal outcome unknown, funds stay reserved",
                extra={
                    "submission_id": submission.id,
                    "client_order_id": submission.client_order_id,
                    "reason": reason,
                },
            )
        return moved

    async def mark_submitted(
        self,
        submission: WithdrawalSubmission,
        external_id: str,
        now: datetime,
    ) -> Withdrawal:
        """
        Record a submission the exchange accepted.

        Args:
            submission: Unresolved submission
            external_id: Exchange withdrawal id
            now: Request timestamp for the record

        Returns:
            Created withdrawal

        Raises:
            ConflictError: The submission was resolved concurrently
        """
        withdrawal = await self.withdrawal_repo.create(
            user_id=submission.user_id,
            amount=submission.amount,
            wallet_address=submission.wallet_address,
            network=submission.network,
            external_tx_id=external_id,
            client_order_id=submission.client_order_id,
            review_status=ReviewStatus.PENDING.value,
            transfer_status=TransferStatus.PROCESSING.value,
            requested_at=now,
        )

        moved = await self.submission_repo.transition(
            submission.id,
            SubmissionState.SUBMITTED,
            withdrawal_id=withdrawal.id,
        )
        if not moved:
            raise ConflictError(
                f"Submission {submission.id} was already resolved",
                code="submission_resolved",
            )

        logger.info(
            "Withdrawal recorded",
            extra={
                "user_id": submission.user_id,
                "withdrawal_id": withdrawal.id,
                "submission_id": submission.id,
                "external_tx_id": external_id,
                "amount": str(submission.amount),
            },
        )
        return withdrawal
