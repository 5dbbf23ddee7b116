"""Push delivery for CourtWatch alerts."""

from .base import NotificationError, Notifier
from .dispatcher import NotificationDispatcher
from .log import LogNotifier
from .push import WebhookPushNotifier

__all__ = [
    "Notifier",
    "NotificationError",
    "NotificationDispatcher",
    "LogNotifier",
    "WebhookPushNotifier",
]
