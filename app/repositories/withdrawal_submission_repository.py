"""
Withdrawal submission repository.

Data access layer for the withdrawal outbox.
"""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import SubmissionState
from app.models.withdrawal_submission import WithdrawalSubmission
from app.repositories.base import BaseRepository

UNRESOLVED_STATES = (
    SubmissionState.RESERVED.value,
    SubmissionState.AMBIGUOUS.value,
)


class WithdrawalSubmissionRepository(BaseRepository[WithdrawalSubmission]):
    """Outbox repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize withdrawal submission repository."""
        super().__init__(WithdrawalSubmission, session)

    async def get_unresolved_before(
        self, cutoff: datetime, limit: int = 100
    ) -> list[WithdrawalSubmission]:
        """
        Get reserved or ambiguous submissions created before cutoff.

        Args:
            cutoff: Only rows older than this are returned
            limit: Batch size

        Returns:
            Oldest unresolved submissions first
        """
        stmt = (
            select(WithdrawalSubmission)
            .where(WithdrawalSubmission.state.in_(UNRESOLVED_STATES))
            .where(WithdrawalSubmission.created_at < cutoff)
            .order_by(WithdrawalSubmission.created_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def transition(
        self,
        submission_id: int,
        new_state: SubmissionState,
        withdrawal_id: int | None = None,
        last_error: str | None = None,
    ) -> bool:
        """
        Move an unresolved submission to new_state.

        Resolved submissions are never changed again, so a reconciler and a
        late request handler cannot both compensate the same debit.

        Returns:
            True if the row was unresolved and has been moved
        """
        values: dict = {"state": new_state.value}
        if withdrawal_id is not None:
            values["withdrawal_id"] = withdrawal_id
        if last_error is not None:
            values["last_error"] = last_error[:1000]

        stmt = (
            update(WithdrawalSubmission)
            .where(WithdrawalSubmission.id == submission_id)
            .where(WithdrawalSubmission.state.in_(UNRESOLVED_STATES))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def count_uncompensated_for_user(self, user_id: int) -> int:
        """
        Count submissions that may have moved money for user.

        Everything except compensated rows: reserved and ambiguous ones
        might still turn out to have been executed.
        """
        stmt = select(func.count(WithdrawalSubmission.id)).where(
            WithdrawalSubmission.user_id == user_id,
            WithdrawalSubmission.state != SubmissionState.COMPENSATED.value,
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0
