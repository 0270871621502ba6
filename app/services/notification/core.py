"""
Core notification service.

Resolves recipients and hands messages to a NotificationSink. A failing
sink never propagates into the caller: settlement and withdrawal flows
treat notifications as fire-and-forget.
"""

from loguru import logger

from app.config.settings import settings
from app.models.user import User
from app.services.notification.sink import NotificationSink


class NotificationService:
    """
    Core notification service.

    Sends to single users and fans operator messages out to every admin.
    """

    def __init__(
        self,
        sink: NotificationSink,
        admin_ids: list[int] | None = None,
    ) -> None:
        """
        Initialize notification service.

        Args:
            sink: Delivery backend
            admin_ids: Operator recipients, defaults to ADMIN_TELEGRAM_IDS
        """
        self.sink = sink
        self.admin_ids = (
            admin_ids if admin_ids is not None else settings.get_admin_ids()
        )

    async def send_to_user(self, user: User, subject: str, body: str) -> bool:
        """
        Send a message to one user.

        Returns:
            False if the user has no recipient address or the sink failed
        """
        if not user.telegram_id:
            logger.info(
                "User has no notification recipient, skipping",
                extra={"user_id": user.id, "subject": subject},
            )
            return False
        return await self._send(user.telegram_id, subject, body)

    async def notify_admins(self, subject: str, body: str) -> int:
        """
        Send a message to every operator.

        Returns:
            Number of operators the sink accepted the message for
        """
        if not self.admin_ids:
            logger.warning(
                "No admins configured to notify", extra={"subject": subject}
            )
            return 0

        sent = 0
        for admin_id in self.admin_ids:
            if await self._send(admin_id, subject, body):
                sent += 1
        return sent

    async def _send(self, recipient: int, subject: str, body: str) -> bool:
        try:
            await self.sink.send(recipient, subject, body)
            return True
        except Exception:
            # Sinks must not raise; contain the ones that do
            logger.exception(
                "Notification sink raised",
                extra={"recipient": recipient, "subject": subject},
            )
            return False
