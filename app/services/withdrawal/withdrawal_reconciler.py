"""
Withdrawal outbox reconciler.

Resolves submissions left ``reserved`` or ``ambiguous`` by a crash or an
exchange timeout. Each one is looked up in the exchange withdrawal history
by its client order id: found means the transfer happened and the
withdrawal is recorded, absent means it never did and the funds are
credited back.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.settings import settings
from app.models.withdrawal import Withdrawal
from app.repositories.user_repository import UserRepository
from app.repositories.withdrawal_submission_repository import (
    WithdrawalSubmissionRepository,
)
from app.services.exchange.base import ExchangeGateway, ExchangeWithdrawal
from app.services.notification import NotificationService
from app.services.withdrawal.withdrawal_balance_manager import (
    WithdrawalBalanceManager,
)
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import must_log

# Exchange history queries are limited to a 90 day window
HISTORY_MAX_WINDOW = timedelta(days=89)
HISTORY_MARGIN = timedelta(minutes=5)


class WithdrawalReconciler:
    """Scheduled resolution of unresolved withdrawal submissions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: ExchangeGateway,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utc_now,
        reconcile_after_minutes: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.notifier = notifier
        self.clock = clock
        self.reconcile_after = timedelta(
            minutes=reconcile_after_minutes
            or settings.withdrawal_reconcile_after_minutes
        )

    async def reconcile(self) -> dict[str, int]:
        """
        Resolve stale submissions.

        Returns:
            Counters per outcome
        """
        stats = {
            "checked": 0,
            "submitted": 0,
            "compensated": 0,
            "skipped": 0,
            "failed": 0,
        }
        now = self.clock()

        async with self.session_factory() as session:
            repo = WithdrawalSubmissionRepository(session)
            pending = await repo.get_unresolved_before(now - self.reconcile_after)
            if not pending:
                return stats

            oldest = min(s.created_at for s in pending)
            start = max(oldest - HISTORY_MARGIN, now - HISTORY_MAX_WINDOW)
            try:
                history = await self.gateway.get_withdrawal_history(
                    start_time=start, end_time=now
                )
            except Exception as e:
                # Nothing is resolved without the history; retry next run
                if must_log(e):
                    logger.warning(
                        "Withdrawal reconciliation postponed",
                        extra={"pending": len(pending), "error": str(e)},
                    )
                else:
                    logger.exception("Withdrawal reconciliation postponed")
                return stats

            by_order_id: dict[str, ExchangeWithdrawal] = {
                w.client_order_id: w for w in history if w.client_order_id
            }
            manager = WithdrawalBalanceManager(session)

            # A rollback expires loaded rows, so each one is re-read by id
            for submission_id in [s.id for s in pending]:
                stats["checked"] += 1
                submission = await repo.get_by_id(submission_id)
                if submission is None:
                    continue
                found = by_order_id.get(submission.client_order_id)
                withdrawal = None
                try:
                    if found is not None:
                        withdrawal = await manager.mark_submitted(
                            submission, found.id, submission.created_at
                        )
                        outcome = "submitted"
                    else:
                        restored = await manager.restore_balance(
                            submission, "Not found in exchange history"
                        )
                        outcome = "compensated" if restored else "skipped"
                    await session.commit()
                except Exception:
                    await session.rollback()
                    stats["failed"] += 1
                    logger.exception(
                        "Failed to reconcile withdrawal submission",
                        extra={"submission_id": submission_id},
                    )
                    continue

                stats[outcome] += 1
                logger.info(
                    "Withdrawal submission reconciled",
                    extra={"submission_id": submission_id, "outcome": outcome},
                )
                if withdrawal is not None:
                    await self._notify_recorded(session, withdrawal)

        if stats["checked"]:
            logger.info("Withdrawal reconciliation finished", extra=stats)
        return stats

    async def _notify_recorded(
        self, session: AsyncSession, withdrawal: Withdrawal
    ) -> None:
        user = await UserRepository(session).get_by_id(withdrawal.user_id)
        if user is None:
            return
        await self.notifier.notify_withdrawal_submitted(user, withdrawal)
        await self.notifier.notify_admins_withdrawal(user, withdrawal)
