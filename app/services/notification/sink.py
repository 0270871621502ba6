"""
Notification sinks.

A sink delivers one message to one recipient. Delivery is best-effort from
the caller's point of view: ``send()`` logs failures and never raises.
"""

import asyncio
from abc import ABC, abstractmethod

from aiogram import Bot
from loguru import logger

from app.config.settings import settings
from app.utils.exceptions import is_safe_to_ignore


def format_message(subject: str, body: str) -> str:
    """Render subject and body as one chat message."""
    return f"{subject}\n\n{body}" if body else subject


class NotificationSink(ABC):
    """Destination for user and operator messages."""

    @abstractmethod
    async def send(self, recipient: int, subject: str, body: str) -> None:
        """Deliver a message. Must not raise."""

    async def close(self) -> None:
        """Release resources held by the sink."""


class TelegramNotificationSink(NotificationSink):
    """
    Sends messages through the Telegram Bot API.

    Each call is bounded by ``settings.notification_timeout``.
    """

    def __init__(
        self,
        bot: Bot | None = None,
        timeout: float | None = None,
    ) -> None:
        if bot is None:
            if not settings.telegram_bot_token:
                raise ValueError("TELEGRAM_BOT_TOKEN is not configured")
            bot = Bot(token=settings.telegram_bot_token)
            self._owns_bot = True
        else:
            self._owns_bot = False
        self.bot = bot
        self.timeout = timeout or settings.notification_timeout

    async def deliver(self, recipient: int, subject: str, body: str) -> None:
        """
        Send one message, raising on failure.

        Raises:
            TimeoutError: Telegram did not answer in time
            TelegramAPIError: Telegram refused the message
        """
        await asyncio.wait_for(
            self.bot.send_message(
                chat_id=recipient,
                text=format_message(subject, body),
                disable_web_page_preview=True,
            ),
            timeout=self.timeout,
        )

    async def send(self, recipient: int, subject: str, body: str) -> None:
        try:
            await self.deliver(recipient, subject, body)
        except TimeoutError:
            logger.warning(
                "Notification timed out",
                extra={"recipient": recipient, "subject": subject},
            )
        except Exception as e:
            if is_safe_to_ignore(e):
                logger.warning(
                    "Notification refused by Telegram",
                    extra={"recipient": recipient, "error": str(e)},
                )
            else:
                logger.exception(
                    "Failed to send notification",
                    extra={"recipient": recipient, "subject": subject},
                )

    async def close(self) -> None:
        if self._owns_bot:
            await self.bot.session.close()
