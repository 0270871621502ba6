"""
Withdrawal transfer status sync.

Advances the exchange-driven transfer status of processing withdrawals
from the exchange withdrawal history. Balances are never touched here: a
failed transfer is reported to operators, not refunded.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.enums import TransferStatus
from app.models.withdrawal import Withdrawal
from app.repositories.withdrawal_repository import WithdrawalRepository
from app.services.exchange.base import (
    WITHDRAWAL_COMPLETED,
    WITHDRAWAL_FAILED,
    ExchangeGateway,
    ExchangeWithdrawal,
)
from app.services.notification import NotificationService
from app.services.withdrawal.withdrawal_reconciler import (
    HISTORY_MARGIN,
    HISTORY_MAX_WINDOW,
)
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import must_log

_TERMINAL_STATES = {
    WITHDRAWAL_COMPLETED: TransferStatus.COMPLETED,
    WITHDRAWAL_FAILED: TransferStatus.FAILED,
}


class WithdrawalStatusSync:
    """Mirrors exchange withdrawal states onto withdrawal records."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: ExchangeGateway,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.notifier = notifier
        self.clock = clock

    @staticmethod
    def _find(
        withdrawal: Withdrawal,
        by_id: dict[str, ExchangeWithdrawal],
        by_order_id: dict[str, ExchangeWithdrawal],
    ) -> ExchangeWithdrawal | None:
        if withdrawal.external_tx_id and withdrawal.external_tx_id in by_id:
            return by_id[withdrawal.external_tx_id]
        if withdrawal.client_order_id:
            return by_order_id.get(withdrawal.client_order_id)
        return None

    async def sync(self) -> dict[str, int]:
        """
        Update every processing withdrawal from the exchange.

        Returns:
            Counters: checked, completed, failed, unchanged
        """
        stats = {"checked": 0, "completed": 0, "failed": 0, "unchanged": 0}
        now = self.clock()

        async with self.session_factory() as session:
            repo = WithdrawalRepository(session)
            processing = await repo.get_processing()
            if not processing:
                return stats

            oldest = min(w.requested_at for w in processing)
            start = max(oldest - HISTORY_MARGIN, now - HISTORY_MAX_WINDOW)
            try:
                history = await self.gateway.get_withdrawal_history(
                    start_time=start, end_time=now
                )
            except Exception as e:
                if must_log(e):
                    logger.warning(
                        "Withdrawal status sync postponed",
                        extra={"error": str(e)},
                    )
                else:
                    logger.exception("Withdrawal status sync postponed")
                return stats

            by_id = {w.id: w for w in history if w.id}
            by_order_id = {
                w.client_order_id: w for w in history if w.client_order_id
            }

            failed: list[Withdrawal] = []
            for withdrawal in processing:
                stats["checked"] += 1
                remote = self._find(withdrawal, by_id, by_order_id)
                if remote is None:
                    stats["unchanged"] += 1
                    continue

                external_status = str(remote.status_code)
                target = _TERMINAL_STATES.get(remote.state)
                if target is None:
                    if withdrawal.external_status != external_status:
                        await repo.set_external_status(
                            withdrawal.id, external_status
                        )
                    stats["unchanged"] += 1
                    continue

                if await repo.set_transfer_status(
                    withdrawal.id, target, external_status, now
                ):
                    logger.info(
                        "Withdrawal transfer finished",
                        extra={
                            "withdrawal_id": withdrawal.id,
                            "transfer_status": target.value,
                            "external_status": external_status,
                        },
                    )
                    if target is TransferStatus.FAILED:
                        stats["failed"] += 1
                        failed.append(withdrawal)
                    else:
                        stats["completed"] += 1

            try:
                await session.commit()
            except Exception:
                await session.rollback()
                raise

            for withdrawal in failed:
                await session.refresh(withdrawal)
                logger.warning(
                    "Withdrawal transfer failed on exchange",
                    extra={
                        "withdrawal_id": withdrawal.id,
                        "user_id": withdrawal.user_id,
                        "amount": str(withdrawal.amount),
                    },
                )
                await self.notifier.notify_admins_transfer_failed(withdrawal)

        if stats["completed"] or stats["failed"]:
            logger.info("Withdrawal status sync finished", extra=stats)
        return stats
