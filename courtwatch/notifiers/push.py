"""Push gateway notifier implementation."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from ..models import NotificationIntent
from .base import NotificationError

logger = logging.getLogger(__name__)


class WebhookPushNotifier:
    """Sends FCM-shaped push messages through an HTTP push gateway."""

    def __init__(self, gateway_url: str, api_key: Optional[str] = None, timeout: int = 30):
        """Initialize push notifier.

        Args:
            gateway_url: Endpoint accepting one message per POST
            api_key: Bearer token for the gateway, if it requires one
            timeout: Request timeout in seconds
        """
        self.gateway_url = gateway_url
        self.api_key = api_key
        self.timeout = timeout

    def build_message(self, intent: NotificationIntent) -> Dict[str, Any]:
        data = intent.data_payload()
        data["timestamp"] = datetime.now(timezone.utc).isoformat()
        return {
            "token": intent.delivery_token,
            "notification": {"title": intent.title, "body": intent.body},
            "data": data,
            "android": {
                "priority": "high",
                "notification": {
                    "sound": "default",
                    "channelId": "court_alerts",
                    "priority": "max",
                    "defaultVibrateTimings": True,
                },
            },
        }

    def send(self, intent: NotificationIntent) -> str:
        """Send one alert to the gateway.

        Raises:
            NotificationError: If the gateway rejects the message or is unreachable
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = requests.post(
                self.gateway_url,
                json={"message": self.build_message(intent)},
                timeout=self.timeout,
                headers=headers,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to send push notification: {e}")
            raise NotificationError(f"Push notification failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        message_id = body.get("name") if isinstance(body, dict) else None
        if not message_id:
            raise NotificationError(f"Push gateway returned: {response.text}")

        logger.info(f"Notification sent successfully: {message_id}")
        return str(message_id)
