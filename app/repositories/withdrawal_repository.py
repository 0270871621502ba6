"""
Withdrawal repository.

Data access layer for Withdrawal model.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import ReviewStatus, TransferStatus
from app.models.withdrawal import Withdrawal
from app.repositories.base import BaseRepository


class WithdrawalRepository(BaseRepository[Withdrawal]):
    """Withdrawal repository with review and transfer queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize withdrawal repository."""
        super().__init__(Withdrawal, session)

    async def get_by_user(self, user_id: int) -> list[Withdrawal]:
        """Get user's withdrawals, newest first."""
        return await self.find_by(user_id=user_id)

    async def count_for_user(self, user_id: int) -> int:
        """Count withdrawals ever recorded for user."""
        return await self.count(user_id=user_id)

    async def get_processing(self) -> list[Withdrawal]:
        """Get withdrawals whose transfer has not reached a final state."""
        stmt = (
            select(Withdrawal)
            .where(
                Withdrawal.transfer_status
                == TransferStatus.PROCESSING.value
            )
            .order_by(Withdrawal.requested_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def set_review_status(
        self, withdrawal_id: int, status: ReviewStatus, now: datetime
    ) -> bool:
        """
        Decide a pending review.

        Returns:
            True if the review was still pending and is now decided
        """
        stmt = (
            update(Withdrawal)
            .where(Withdrawal.id == withdrawal_id)
            .where(Withdrawal.review_status == ReviewStatus.PENDING.value)
            .values(review_status=status.value, reviewed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def set_transfer_status(
        self,
        withdrawal_id: int,
        status: TransferStatus,
        external_status: str | None,
        now: datetime,
    ) -> bool:
        """
        Advance a processing transfer.

        Returns:
            True if the transfer was still processing
        """
        stmt = (
            update(Withdrawal)
            .where(Withdrawal.id == withdrawal_id)
            .where(
                Withdrawal.transfer_status
                == TransferStatus.PROCESSING.value
            )
            .values(
                transfer_status=status.value,
                external_status=external_status,
                transfer_updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def set_external_status(
        self, withdrawal_id: int, external_status: str | None
    ) -> None:
        """Mirror the raw exchange status without changing the transfer."""
        stmt = (
            update(Withdrawal)
            .where(Withdrawal.id == withdrawal_id)
            .values(external_status=external_status)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
