"""
Withdrawal lifecycle handling module.

Administrative review of withdrawals and read-side queries. The review
status moves from Pending to Approved or Rejected exactly once, Pending
itself may be re-sent to remind the owner; balances
are never touched here, funds were already reserved at request time.
"""

from collections.abc import Callable
from datetime import datetime

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import ReviewStatus
from app.models.withdrawal import Withdrawal
from app.repositories.user_repository import UserRepository
from app.repositories.withdrawal_repository import WithdrawalRepository
from app.services.notification import NotificationService
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import (
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)


class WithdrawalLifecycleHandler:
    """Handles withdrawal review decisions and listings."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize lifecycle handler.

        Args:
            session: Database session
            notifier: Notification service
            clock: Current time provider
        """
        self.session = session
        self.notifier = notifier
        self.clock = clock
        self.withdrawal_repo = WithdrawalRepository(session)
        self.user_repo = UserRepository(session)

    @staticmethod
    def parse_review_status(status: str | ReviewStatus) -> ReviewStatus:
        """
        Parse a review status value.

        Raises:
            ValidationError: Not Pending, Approved or Rejected
        """
        try:
            return ReviewStatus(status)
        except ValueError:
            raise ValidationError(
                f"Invalid withdrawal status: {status}", code="invalid_status"
            ) from None

    async def update_withdrawal_status(
        self, withdrawal_id: int, status: str | ReviewStatus
    ) -> Withdrawal:
        """
        Set the review status of a withdrawal.

        Pending on a pending withdrawal changes nothing but still tells the
        owner it is under review. Approved and Rejected are final.

        Args:
            withdrawal_id: Withdrawal ID
            status: Pending, Approved or Rejected

        Returns:
            The withdrawal

        Raises:
            ValidationError: Invalid status value
            NotFoundError: Unknown withdrawal
            InvalidStatusTransition: Review already decided
        """
        target = self.parse_review_status(status)

        withdrawal = await self.withdrawal_repo.get_by_id(withdrawal_id)
        if withdrawal is None:
            raise NotFoundError(
                f"Withdrawal {withdrawal_id} not found",
                code="withdrawal_not_found",
            )

        if target is ReviewStatus.PENDING:
            if withdrawal.review_status != ReviewStatus.PENDING:
                raise InvalidStatusTransition(
                    f"Withdrawal {withdrawal_id} review is already decided",
                    code="review_decided",
                )
        else:
            try:
                changed = await self.withdrawal_repo.set_review_status(
                    withdrawal_id, target, self.clock()
                )
                if not changed:
                    await self.session.rollback()
                    raise InvalidStatusTransition(
                        f"Withdrawal {withdrawal_id} review is already decided",
                        code="review_decided",
                    )
                await self.session.commit()
            except InvalidStatusTransition:
                raise
            except Exception:
                await self.session.rollback()
                raise

            await self.session.refresh(withdrawal)

        logger.info(
            "Withdrawal review updated",
            extra={
                "withdrawal_id": withdrawal_id,
                "review_status": target.value,
            },
        )

        user = await self.user_repo.get_by_id(withdrawal.user_id)
        if user is not None:
            await self.notifier.notify_withdrawal_review(user, withdrawal)
        return withdrawal

    async def list_withdrawals(
        self,
        page: int = 1,
        per_page: int = 20,
        review_status: str | None = None,
    ) -> tuple[list[Withdrawal], int]:
        """
        List withdrawals page by page, newest first.

        Raises:
            ValidationError: Unknown review status filter
        """
        filters = {}
        if review_status is not None:
            try:
                filters["review_status"] = ReviewStatus(review_status).value
            except ValueError:
                raise ValidationError(
                    f"Invalid withdrawal status: {review_status}",
                    code="invalid_status",
                ) from None
        return await self.withdrawal_repo.find_paginated(
            page=page, per_page=per_page, **filters
        )

    async def get_user_withdrawals(self, user_id: int) -> list[Withdrawal]:
        """Get user's withdrawals, newest first."""
        return await self.withdrawal_repo.get_by_user(user_id)
