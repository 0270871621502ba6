"""
Notification service module.

Structure:
- sink.py: NotificationSink interface and the Telegram sink
- core.py: recipient resolution and operator fan-out
- admin.py: operator alerts
- user_notifications.py: user messages (deposits, withdrawals)

Usage:
    from app.services.notification import (
        NotificationService,
        TelegramNotificationSink,
    )

    notifier = NotificationService(TelegramNotificationSink())
    await notifier.notify_admins("Alert", "Something happened")
"""

from app.services.notification.admin import AdminNotificationMixin
from app.services.notification.core import (
    NotificationService as CoreNotificationService,
)
from app.services.notification.sink import (
    NotificationSink,
    TelegramNotificationSink,
    format_message,
)
from app.services.notification.user_notifications import UserNotificationMixin


class NotificationService(
    CoreNotificationService,
    AdminNotificationMixin,
    UserNotificationMixin,
):
    """
    Combined notification service.

    Core delivery plus all admin and user message builders.
    """


__all__ = [
    "NotificationService",
    "NotificationSink",
    "TelegramNotificationSink",
    "format_message",
]
