"""Fire-and-forget delivery of decided alerts, with an audit trail."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import List, Optional, Protocol

from ..models import NotificationIntent
from .base import NotificationError, Notifier

logger = logging.getLogger(__name__)


class NotificationAudit(Protocol):
    def log_notification(
        self,
        intent: NotificationIntent,
        success: bool,
        error: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> None:
        ...


class NotificationDispatcher:
    """Hands alerts to a notifier without holding up the polling cycle.

    Delivery runs on a small thread pool. Failures are written to the audit
    log and never raised back to the caller; the subscription's state has
    already been committed by the time an alert gets here.
    """

    def __init__(
        self,
        notifier: Notifier,
        audit: Optional[NotificationAudit] = None,
        max_workers: int = 4,
        synchronous: bool = False,
    ):
        self.notifier = notifier
        self.audit = audit
        self.synchronous = synchronous
        self._executor: Optional[ThreadPoolExecutor] = None
        if not synchronous:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="courtwatch-dispatch"
            )
        self._pending: List[Future] = []

    def dispatch(self, intent: NotificationIntent) -> None:
        if self._executor is None:
            self._deliver(intent)
            return
        self._pending = [f for f in self._pending if not f.done()]
        try:
            self._pending.append(self._executor.submit(self._deliver, intent))
        except RuntimeError as e:
            # executor already shut down
            logger.error(
                f"Dropped {intent.alert_type.value} alert for case "
                f"{intent.case_number} to {intent.owner_id}: {e}"
            )
            self._audit(intent, success=False, error=f"dispatcher closed: {e}")

    def _deliver(self, intent: NotificationIntent) -> bool:
        message_id = None
        error = None
        try:
            message_id = self.notifier.send(intent)
        except NotificationError as e:
            error = str(e)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.error(f"Unexpected error delivering alert: {e}", exc_info=True)

        success = error is None
        if not success:
            logger.error(
                f"Failed to deliver {intent.alert_type.value} alert for case "
                f"{intent.case_number} to {intent.owner_id}: {error}"
            )

        self._audit(intent, success=success, error=error, message_id=message_id)
        return success

    def _audit(
        self,
        intent: NotificationIntent,
        success: bool,
        error: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> None:
        if self.audit is None:
            return
        try:
            self.audit.log_notification(
                intent, success=success, error=error, message_id=message_id
            )
        except Exception as e:
            logger.error(f"Failed to write notification log: {e}")

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries to finish."""
        pending, self._pending = self._pending, []
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
