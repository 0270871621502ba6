"""
Queued notification delivery.

``QueuedNotificationSink`` enqueues each message for the
``deliver_notification`` actor, which sends it through Telegram and lets
the broker's Retries middleware back off and retry transient failures.
"""

import asyncio

import dramatiq
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError
from loguru import logger

from app.services.notification.sink import (
    NotificationSink,
    TelegramNotificationSink,
)
from jobs.async_runner import async_actor
from jobs.broker import MAX_RETRIES

DELIVERY_TIME_LIMIT_MS = 60_000


@dramatiq.actor(
    queue_name="notifications",
    max_retries=MAX_RETRIES,
    time_limit=DELIVERY_TIME_LIMIT_MS,
)
@async_actor
async def deliver_notification(recipient: int, subject: str, body: str) -> None:
    """
    Deliver one queued notification.

    Timeouts and Telegram server errors propagate so the message is
    retried; a blocked bot or a bad chat id never succeeds and is dropped.
    """
    sink = TelegramNotificationSink()
    try:
        await sink.deliver(recipient, subject, body)
    except (TelegramForbiddenError, TelegramBadRequest) as e:
        logger.warning(
            "Queued notification dropped",
            extra={"recipient": recipient, "subject": subject, "error": str(e)},
        )
        return
    finally:
        await sink.close()

    logger.debug(
        "Queued notification delivered",
        extra={"recipient": recipient, "subject": subject},
    )


class QueuedNotificationSink(NotificationSink):
    """Hands messages to the Dramatiq notification queue."""

    async def send(self, recipient: int, subject: str, body: str) -> None:
        try:
            # Enqueueing is a blocking Redis call
            await asyncio.to_thread(
                deliver_notification.send, recipient, subject, body
            )
        except Exception:
            logger.exception(
                "Failed to enqueue notification",
                extra={"recipient": recipient, "subject": subject},
            )
