# courier_dispatch/core/notifications/__init__.py
"""
Уведомления курьеров.
"""

from courier_dispatch.core.notifications.service import (
    NotificationChannel,
    RecordingNotificationChannel,
    TelegramNotificationChannel,
    create_notification_channel,
)

__all__ = [
    "NotificationChannel",
    "RecordingNotificationChannel",
    "TelegramNotificationChannel",
    "create_notification_channel",
]
