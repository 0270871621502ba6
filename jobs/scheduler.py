"""
Scheduler entry point.

Runs the deposit settlement poll, the withdrawal outbox reconciler and
the withdrawal status sync on an AsyncIOScheduler, plus the health check
server.
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from app.config.database import async_engine, async_session_maker
from app.config.settings import settings
from app.services.exchange import BinanceGateway, ExchangeGateway
from app.services.notification import (
    NotificationService,
    NotificationSink,
    TelegramNotificationSink,
)
from app.services.settlement import SettlementEngine
from app.services.withdrawal import WithdrawalReconciler, WithdrawalStatusSync
from app.utils.datetime_utils import utc_now
from app.utils.logging import setup_logging
from jobs.health import set_scheduler, start_health_server, stop_health_server

# Global scheduler reference for shutdown
scheduler_instance: AsyncIOScheduler | None = None


def build_sink() -> NotificationSink:
    """Pick the notification backend from settings."""
    if settings.notification_queue_enabled:
        from jobs.tasks.notifications import QueuedNotificationSink

        return QueuedNotificationSink()
    return TelegramNotificationSink()


def create_scheduler(
    engine: SettlementEngine,
    reconciler: WithdrawalReconciler,
    status_sync: WithdrawalStatusSync,
) -> AsyncIOScheduler:
    """
    Register the recurring jobs.

    Every job runs at most once at a time; missed runs are coalesced.
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        engine.poll,
        "interval",
        seconds=settings.deposit_poll_interval_seconds,
        id="deposit_settlement",
        name="Deposit settlement poll",
        max_instances=1,
        coalesce=True,
        next_run_time=utc_now(),
    )
    scheduler.add_job(
        reconciler.reconcile,
        "interval",
        seconds=settings.withdrawal_sync_interval_seconds,
        id="withdrawal_reconcile",
        name="Withdrawal outbox reconciliation",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        status_sync.sync,
        "interval",
        seconds=settings.withdrawal_sync_interval_seconds,
        id="withdrawal_status_sync",
        name="Withdrawal transfer status sync",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def run(gateway: ExchangeGateway | None = None) -> None:
    """Run the scheduler until SIGINT or SIGTERM."""
    global scheduler_instance

    if gateway is None:
        if not settings.exchange_enabled:
            logger.warning(
                "Exchange credentials not configured, exchange calls will fail"
            )
        gateway = BinanceGateway()
    sink = build_sink()
    notifier = NotificationService(sink)

    engine = SettlementEngine(async_session_maker, gateway, notifier)
    reconciler = WithdrawalReconciler(async_session_maker, gateway, notifier)
    status_sync = WithdrawalStatusSync(async_session_maker, gateway, notifier)

    scheduler = create_scheduler(engine, reconciler, status_sync)
    scheduler_instance = scheduler
    scheduler.start()
    set_scheduler(scheduler, engine)

    runner, _ = await start_health_server(port=settings.health_check_port)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info(
        "Scheduler started",
        extra={"jobs": [job.id for job in scheduler.get_jobs()]},
    )
    try:
        await stop.wait()
    finally:
        logger.info("Graceful shutdown initiated...")
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)
        await gateway.close()
        await sink.close()
        await async_engine.dispose()
        logger.info("Graceful shutdown complete")


def main() -> None:
    """Console entry point."""
    setup_logging("scheduler")
    asyncio.run(run())


if __name__ == "__main__":
    main()
