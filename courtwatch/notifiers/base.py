"""Base notifier interface."""

from typing import Protocol

from ..models import NotificationIntent


class Notifier(Protocol):
    """Protocol for push delivery services."""

    def send(self, intent: NotificationIntent) -> str:
        """Deliver one alert.

        Args:
            intent: The alert to deliver

        Returns:
            Provider message id

        Raises:
            NotificationError: If the notification fails to send
        """
        ...


class NotificationError(Exception):
    """Raised when a notification fails to send."""
    pass
