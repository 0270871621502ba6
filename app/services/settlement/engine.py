"""
Settlement engine.

Polls the exchange for recent deposits, matches each confirmed deposit to
the waiting intent carrying exactly that amount, and settles it: the intent
is completed, a first deposit makes the user eligible and pays the reward
(and the referrer), and stale intents are expired.

Guarantees:
- a deposit is settled at most once: the intent transition is a
  conditional UPDATE and ``external_tx_id`` is unique;
- one event failing never stops the rest of the cycle, and a failed event
  is retried on the next poll because the lookback window overlaps;
- ``poll()`` never raises and never runs twice at the same time.
"""

import asyncio
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import StrEnum

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.business_constants import calculate_reward
from app.config.settings import settings
from app.models.deposit_intent import DepositIntent
from app.repositories.deposit_intent_repository import DepositIntentRepository
from app.repositories.user_repository import UserRepository
from app.services.exchange.base import DepositEvent, ExchangeGateway
from app.services.ledger import LedgerService
from app.services.notification import NotificationService
from app.services.settlement.tx_cache import SeenTxCache
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import must_log


class SettlementOutcome(StrEnum):
    """What happened to one deposit event."""

    UNCONFIRMED = "unconfirmed"  # exchange has not credited it yet
    DUPLICATE = "duplicate"  # tx id already settled
    UNMATCHED = "unmatched"  # no waiting intent with this amount
    SETTLED = "settled"  # intent completed, user already eligible
    REWARDED = "rewarded"  # intent completed, eligibility granted
    LOST_RACE = "lost_race"  # a concurrent settler got there first


_OUTCOME_COUNTERS = {
    SettlementOutcome.UNCONFIRMED: "unconfirmed",
    SettlementOutcome.DUPLICATE: "duplicates",
    SettlementOutcome.UNMATCHED: "unmatched",
    SettlementOutcome.SETTLED: "settled",
    SettlementOutcome.REWARDED: "rewarded",
    SettlementOutcome.LOST_RACE: "lost_races",
}


@dataclass
class PollStats:
    """Counters for one poll cycle."""

    started_at: datetime
    finished_at: datetime | None = None
    fetched: int = 0
    unconfirmed: int = 0
    duplicates: int = 0
    unmatched: int = 0
    settled: int = 0
    rewarded: int = 0
    lost_races: int = 0
    failed: int = 0
    expired: int = 0
    fetch_error: str | None = None

    def record(self, outcome: SettlementOutcome) -> None:
        counter = _OUTCOME_COUNTERS[outcome]
        setattr(self, counter, getattr(self, counter) + 1)
        if outcome is SettlementOutcome.REWARDED:
            self.settled += 1

    def as_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = (
            self.finished_at.isoformat() if self.finished_at else None
        )
        return data


@dataclass
class _Settlement:
    outcome: SettlementOutcome
    reward: Decimal | None = None
    referrer_id: int | None = None
    referral_paid: bool = False


class SettlementEngine:
    """
    Deposit settlement loop.

    Every collaborator is injected so the engine can run against a fake
    gateway and a fake clock. Each event is settled in its own session and
    transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: ExchangeGateway,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utc_now,
        seen_cache: SeenTxCache | None = None,
        lookback_minutes: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.notifier = notifier
        self.clock = clock
        self.seen_cache = seen_cache if seen_cache is not None else SeenTxCache()
        self.lookback = timedelta(
            minutes=lookback_minutes or settings.deposit_lookback_minutes
        )

        self._lock = asyncio.Lock()
        self.last_stats: PollStats | None = None
        self.skipped_polls = 0

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def poll(self) -> None:
        """
        Run one settlement cycle.

        Skipped when the previous cycle is still running. Never raises.
        """
        if self._lock.locked():
            self.skipped_polls += 1
            logger.warning(
                "Settlement poll still running, skipping this tick",
                extra={"skipped_polls": self.skipped_polls},
            )
            return

        async with self._lock:
            stats = PollStats(started_at=self.clock())
            try:
                await self._run_cycle(stats)
            except Exception:
                logger.exception("Settlement cycle aborted unexpectedly")
            finally:
                stats.finished_at = self.clock()
                self.last_stats = stats
                logger.info(
                    "Settlement cycle finished",
                    extra={
                        "fetched": stats.fetched,
                        "settled": stats.settled,
                        "rewarded": stats.rewarded,
                        "duplicates": stats.duplicates,
                        "unmatched": stats.unmatched,
                        "failed": stats.failed,
                        "expired": stats.expired,
                    },
                )

    async def _run_cycle(self, stats: PollStats) -> None:
        now = self.clock()
        try:
            events = await self.gateway.get_deposit_history(
                start_time=now - self.lookback, end_time=now
            )
        except Exception as e:
            events = []
            stats.fetch_error = str(e)
            if must_log(e):
                logger.warning(
                    "Failed to fetch deposit history",
                    extra={"error": str(e)},
                )
            else:
                logger.exception("Failed to fetch deposit history")

        stats.fetched = len(events)
        for event in events:
            try:
                outcome = await self.process_deposit(event)
            except Exception:
                stats.failed += 1
                logger.exception(
                    "Failed to settle deposit, will retry next cycle",
                    extra={"tx_id": event.tx_id, "amount": str(event.amount)},
                )
            else:
                stats.record(outcome)

        try:
            stats.expired = await self.sweep_expired()
        except Exception:
            logger.exception("Failed to expire stale intents")

    async def process_deposit(self, event: DepositEvent) -> SettlementOutcome:
        """
        Settle one deposit event.

        Raises:
            Exception: Any storage failure; the transaction is rolled back
                and the intent stays waiting
        """
        if not event.is_confirmed:
            return SettlementOutcome.UNCONFIRMED

        if not event.tx_id:
            logger.warning(
                "Deposit event without tx id ignored",
                extra={"amount": str(event.amount), "network": event.network},
            )
            return SettlementOutcome.UNMATCHED

        if event.tx_id in self.seen_cache:
            return SettlementOutcome.DUPLICATE

        async with self.session_factory() as session:
            intent_repo = DepositIntentRepository(session)

            if await intent_repo.has_external_tx(event.tx_id):
                self.seen_cache.add(event.tx_id)
                return SettlementOutcome.DUPLICATE

            now = self.clock()
            intent = await intent_repo.find_waiting_match(
                event.amount, event.network, now
            )
            if intent is None:
                logger.warning(
                    "Unmatched deposit, needs manual reconciliation",
                    extra={
                        "tx_id": event.tx_id,
                        "amount": str(event.amount),
                        "network": event.network,
                    },
                )
                return SettlementOutcome.UNMATCHED

            try:
                result = await self._settle(session, intent, event, now)
                if result.outcome is SettlementOutcome.LOST_RACE:
                    await session.rollback()
                    return result.outcome
                await session.commit()
            except IntegrityError:
                # Another settler recorded this tx id first
                await session.rollback()
                logger.warning(
                    "Deposit settled concurrently",
                    extra={"tx_id": event.tx_id, "intent_id": intent.id},
                )
                self.seen_cache.add(event.tx_id)
                return SettlementOutcome.LOST_RACE
            except Exception:
                await session.rollback()
                raise

            self.seen_cache.add(event.tx_id)
            logger.info(
                "Deposit settled",
                extra={
                    "tx_id": event.tx_id,
                    "intent_id": intent.id,
                    "user_id": intent.user_id,
                    "amount": str(event.amount),
                    "outcome": result.outcome.value,
                    "reward": str(result.reward) if result.reward else None,
                },
            )

            await self._notify(session, intent, result)
            return result.outcome

    async def _settle(
        self,
        session: AsyncSession,
        intent: DepositIntent,
        event: DepositEvent,
        now: datetime,
    ) -> _Settlement:
        """Apply settlement inside the caller's transaction."""
        intent_repo = DepositIntentRepository(session)
        if not await intent_repo.mark_completed(intent.id, event.tx_id, now):
            logger.info(
                "Intent no longer waiting, skipping",
                extra={"intent_id": intent.id, "tx_id": event.tx_id},
            )
            return _Settlement(outcome=SettlementOutcome.LOST_RACE)

        user = await UserRepository(session).get_by_id(intent.user_id)
        if user is None or user.eligible:
            return _Settlement(outcome=SettlementOutcome.SETTLED)

        ledger = LedgerService(session)
        category = intent.category or user.category
        base = (
            intent.base_amount
            if intent.base_amount is not None
            else intent.expected_amount
        )
        reward = calculate_reward(base, category)

        if not await ledger.grant_eligibility(user.id, reward, category):
            # Became eligible through a concurrent settlement
            return _Settlement(outcome=SettlementOutcome.SETTLED)

        result = _Settlement(
            outcome=SettlementOutcome.REWARDED,
            reward=reward,
            referrer_id=user.referrer_id,
        )
        if user.referrer_id and reward > 0:
            paid = await ledger.pay_referral_reward(
                user.referrer_id, user.id, reward
            )
            result.referral_paid = paid is not None
        return result

    async def _notify(
        self,
        session: AsyncSession,
        intent: DepositIntent,
        result: _Settlement,
    ) -> None:
        """Post-commit notifications; failures are logged by the service."""
        try:
            await session.refresh(intent)
            user = await UserRepository(session).get_by_id(intent.user_id)
            if user is None:
                return
            await session.refresh(user)
            await self.notifier.notify_deposit_confirmed(
                user, intent, result.reward
            )
            await self.notifier.notify_admins_deposit_settled(
                user,
                intent,
                result.reward,
                result.referrer_id if result.referral_paid else None,
            )
        except Exception:
            logger.exception(
                "Failed to send settlement notifications",
                extra={"intent_id": intent.id},
            )

    async def sweep_expired(self) -> int:
        """
        Expire every waiting intent past its expiry.

        Returns:
            Number of intents expired
        """
        async with self.session_factory() as session:
            try:
                count = await DepositIntentRepository(session).expire_stale(
                    self.clock()
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        if count:
            logger.info("Expired stale deposit intents", extra={"count": count})
        return count

    async def run_forever(self, interval_seconds: float | None = None) -> None:
        """Poll on a fixed interval until cancelled."""
        interval = interval_seconds or settings.deposit_poll_interval_seconds
        logger.info(
            "Settlement loop started", extra={"interval_seconds": interval}
        )
        while True:
            await self.poll()
            await asyncio.sleep(interval)
