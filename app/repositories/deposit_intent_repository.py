"""
Deposit intent repository.

Data access layer for DepositIntent model. Every status transition is a
conditional UPDATE guarded by ``status = 'waiting'`` so terminal intents
are never rewritten.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.deposit_intent import DepositIntent
from app.models.enums import IntentStatus
from app.repositories.base import BaseRepository


class DepositIntentRepository(BaseRepository[DepositIntent]):
    """Deposit intent repository with matching and expiry queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize deposit intent repository."""
        super().__init__(DepositIntent, session)

    async def get_active_for_user(
        self, user_id: int, now: datetime
    ) -> DepositIntent | None:
        """
        Get the user's waiting intent that has not expired yet.

        Args:
            user_id: Owner ID
            now: Current time

        Returns:
            Active intent or None
        """
        stmt = (
            select(DepositIntent)
            .where(DepositIntent.user_id == user_id)
            .where(DepositIntent.status == IntentStatus.WAITING.value)
            .where(DepositIntent.expires_at > now)
            .order_by(DepositIntent.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest_active_for_user(
        self, user_id: int
    ) -> DepositIntent | None:
        """Get the user's most recent waiting intent regardless of expiry."""
        stmt = (
            select(DepositIntent)
            .where(DepositIntent.user_id == user_id)
            .where(DepositIntent.status == IntentStatus.WAITING.value)
            .order_by(DepositIntent.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def is_amount_waiting(self, amount: Decimal) -> bool:
        """Check whether any waiting intent already uses this amount."""
        return await self.exists(
            expected_amount=amount, status=IntentStatus.WAITING.value
        )

    async def find_waiting_match(
        self, amount: Decimal, network: str, now: datetime
    ) -> DepositIntent | None:
        """
        Find the waiting, unexpired intent a deposit belongs to.

        The exact amount is the correlation key.

        Args:
            amount: Deposited amount
            network: Deposit network
            now: Current time

        Returns:
            Matching intent or None
        """
        stmt = (
            select(DepositIntent)
            .where(DepositIntent.status == IntentStatus.WAITING.value)
            .where(DepositIntent.expected_amount == amount)
            .where(DepositIntent.network == network)
            .where(DepositIntent.expires_at > now)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def has_external_tx(self, tx_id: str) -> bool:
        """Check whether a deposit transaction was already recorded."""
        return await self.exists(external_tx_id=tx_id)

    async def mark_completed(
        self, intent_id: int, tx_id: str, now: datetime
    ) -> bool:
        """
        Complete a waiting, unexpired intent.

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(DepositIntent)
            .where(DepositIntent.id == intent_id)
            .where(DepositIntent.status == IntentStatus.WAITING.value)
            .where(DepositIntent.expires_at > now)
            .values(
                status=IntentStatus.COMPLETED.value,
                external_tx_id=tx_id,
                completed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def expire_stale(self, now: datetime) -> int:
        """
        Expire every waiting intent past its expiry in one statement.

        Returns:
            Number of intents expired
        """
        stmt = (
            update(DepositIntent)
            .where(DepositIntent.status == IntentStatus.WAITING.value)
            .where(DepositIntent.expires_at <= now)
            .values(status=IntentStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def expire_stale_for_user(
        self, user_id: int, now: datetime
    ) -> int:
        """Expire one user's waiting intents that are past expiry."""
        stmt = (
            update(DepositIntent)
            .where(DepositIntent.user_id == user_id)
            .where(DepositIntent.status == IntentStatus.WAITING.value)
            .where(DepositIntent.expires_at <= now)
            .values(status=IntentStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def get_history(
        self, user_id: int, limit: int = 20
    ) -> list[DepositIntent]:
        """Get the user's intents, newest first."""
        stmt = (
            select(DepositIntent)
            .where(DepositIntent.user_id == user_id)
            .order_by(
                DepositIntent.created_at.desc(), DepositIntent.id.desc()
            )
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
