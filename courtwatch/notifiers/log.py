"""Notifier that only logs, for dry runs."""

import logging
import uuid

from ..models import NotificationIntent

logger = logging.getLogger(__name__)


class LogNotifier:
    """Logs alerts instead of delivering them."""

    def send(self, intent: NotificationIntent) -> str:
        logger.info(
            f"DRY RUN - would notify {intent.owner_id}: {intent.title} | {intent.body}"
        )
        return f"dry-run-{uuid.uuid4().hex[:12]}"
