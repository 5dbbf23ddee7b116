"""
CourtWatch tracking - per-subscription notification state machine

Each polling cycle every active watch subscription gets exactly one decision:
``decide()`` looks the watched case up in the snapshot, works out where it
stands and returns the subscription's next state together with at most one
alert. ``CaseTracker`` applies those decisions: it persists the new state
first and only then hands the alert to the dispatcher, so a failed delivery
never rewinds a subscription.

States advance none -> early_warning -> approaching -> in_session ->
completed within one appearance of a case. Once completed, a later
appearance is eligible for early warning and approaching again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol

from .models import (
    AlertState,
    CaseStatus,
    CourtRecord,
    Device,
    NotificationIntent,
    Snapshot,
    WatchSubscription,
    utcnow,
)
from .queue import current_case, find_case, resolve_position

logger = logging.getLogger(__name__)

DEFAULT_EARLY_WARNING_THRESHOLD = 5
IN_SESSION_REPEAT_INTERVAL = timedelta(minutes=5)

EARLY_WARNING_FROM = frozenset({AlertState.NONE, AlertState.COMPLETED})
APPROACHING_BLOCKED = frozenset({AlertState.APPROACHING, AlertState.IN_SESSION})
COMPLETED_FROM = frozenset({AlertState.IN_SESSION, AlertState.APPROACHING})


@dataclass(frozen=True)
class Decision:
    """Outcome of one subscription's evaluation against one snapshot."""

    subscription: WatchSubscription
    alert: Optional[AlertState] = None
    record: Optional[CourtRecord] = None
    position: Optional[int] = None

    @property
    def changed(self) -> bool:
        return self.alert is not None

    @property
    def new_state(self) -> AlertState:
        return self.subscription.last_notification_sent


def decide(
    subscription: WatchSubscription,
    snapshot: Snapshot,
    now: Optional[datetime] = None,
    threshold: int = DEFAULT_EARLY_WARNING_THRESHOLD,
    repeat_interval: timedelta = IN_SESSION_REPEAT_INTERVAL,
) -> Decision:
    """Decide the next state and alert for one subscription.

    Pure: the subscription passed in is not modified; when an alert fires the
    returned decision carries an advanced copy.
    """
    now = now or utcnow()
    state = subscription.last_notification_sent
    flags = subscription.flags
    record = find_case(snapshot.courts, subscription.case_identifier)

    def fire(alert: AlertState, position: Optional[int] = None) -> Decision:
        return Decision(
            subscription=subscription.advanced(alert, now),
            alert=alert,
            record=record,
            position=position,
        )

    if record is None:
        # The case has left the board
        if state in COMPLETED_FROM and flags.completed:
            return fire(AlertState.COMPLETED)
        return Decision(subscription=subscription)

    if record.case_status is CaseStatus.IN_SESSION:
        if flags.in_session and (
            state is not AlertState.IN_SESSION
            or _elapsed(subscription.last_notification_time, now) >= repeat_interval
        ):
            return fire(AlertState.IN_SESSION)
        return Decision(subscription=subscription, record=record)

    if record.case_status is CaseStatus.UNKNOWN:
        return Decision(subscription=subscription, record=record)

    position = resolve_position(record.case_number, record.court_number, snapshot.courts)
    if position is None:
        return Decision(subscription=subscription, record=record)

    if 1 < position <= threshold:
        if flags.early_warning and state in EARLY_WARNING_FROM:
            return fire(AlertState.EARLY_WARNING, position)
    elif position == 1:
        if flags.approaching and state not in APPROACHING_BLOCKED:
            return fire(AlertState.APPROACHING, position)

    return Decision(subscription=subscription, record=record, position=position)


def _elapsed(since: Optional[datetime], now: datetime) -> timedelta:
    if since is None:
        return timedelta.max
    return now - since


def format_alert(
    alert: AlertState, case_number: str, details: Dict[str, Any]
) -> Dict[str, str]:
    """Title and body of the push message for an alert."""
    court = details.get("court_number") or "-"

    if alert is AlertState.EARLY_WARNING:
        return {
            "title": f"⚠️ Case Approaching - {case_number}",
            "body": f"Your case is {details.get('position') or 5} cases away in Court {court}",
        }
    if alert is AlertState.APPROACHING:
        return {
            "title": f"🔔 Case Next - {case_number}",
            "body": f"Your case is next in line in Court {court}",
        }
    if alert is AlertState.IN_SESSION:
        judge = details.get("judge_name")
        return {
            "title": f"⚖️ Case Started - {case_number}",
            "body": f"Your case is now IN SESSION in Court {court}"
            + (f" - {judge}" if judge else ""),
        }
    if alert is AlertState.COMPLETED:
        return {
            "title": f"✅ Case Completed - {case_number}",
            "body": f"Your case hearing has ended in Court {court}",
        }
    raise ValueError(f"no push message for alert state {alert.value!r}")


def build_intent(
    decision: Decision, device: Device, snapshot: Snapshot
) -> NotificationIntent:
    """Turn a decided alert into a delivery-ready notification."""
    if decision.alert is None:
        raise ValueError("decision carries no alert")

    subscription = decision.subscription
    record = decision.record
    details: Dict[str, Any] = {"court_number": "-", "judge_name": ""}
    if record is not None:
        same_court = [c for c in snapshot.courts if c.court_number == record.court_number]
        details = {
            "court_number": record.court_number,
            "judge_name": record.judge_name,
            "stream_url": record.stream_url,
            "bench_type": record.bench_type.value,
            "serial_number": record.serial_number,
            "actual_case_number": record.case_number,
            "position": decision.position,
            "current_case": current_case(same_court),
            "total_cases": sum(1 for c in same_court if c.queue_position is not None),
        }

    message = format_alert(decision.alert, subscription.case_identifier, details)
    return NotificationIntent(
        owner_id=subscription.owner_id,
        delivery_token=device.push_token or "",
        case_number=subscription.case_identifier,
        alert_type=decision.alert,
        title=message["title"],
        body=message["body"],
        data=details,
        subscription_id=subscription.subscription_id,
    )


class SubscriptionStore(Protocol):
    """What the tracker needs from persistence."""

    def get_active_subscriptions(self) -> List[WatchSubscription]:
        ...

    def get_active_device(self, device_id: str) -> Optional[Device]:
        ...

    def update_notification_state(
        self, subscription_id: int, state: AlertState, when: Optional[datetime]
    ) -> None:
        ...


class Dispatcher(Protocol):
    def dispatch(self, intent: NotificationIntent) -> None:
        ...


class CaseTracker:
    """Runs the state machine over every active subscription for a snapshot."""

    def __init__(
        self,
        store: SubscriptionStore,
        dispatcher: Dispatcher,
        threshold: int = DEFAULT_EARLY_WARNING_THRESHOLD,
        repeat_interval: timedelta = IN_SESSION_REPEAT_INTERVAL,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.threshold = threshold
        self.repeat_interval = repeat_interval

    def process(
        self, snapshot: Snapshot, now: Optional[datetime] = None
    ) -> Dict[str, int]:
        """Evaluate all active subscriptions; returns per-cycle counts."""
        counts = {"processed": 0, "alerts": 0, "skipped": 0, "errors": 0}
        subscriptions = self.store.get_active_subscriptions()
        if not subscriptions:
            logger.info("No active watchlists to process")
            return counts

        logger.info(f"Processing {len(subscriptions)} active watchlists")
        for subscription in subscriptions:
            try:
                outcome = self._process_one(subscription, snapshot, now)
            except Exception as e:
                counts["errors"] += 1
                logger.error(
                    f"Error processing watchlist {subscription.subscription_id}: {e}",
                    exc_info=True,
                )
                continue
            counts[outcome] += 1
        return counts

    def _process_one(
        self,
        subscription: WatchSubscription,
        snapshot: Snapshot,
        now: Optional[datetime],
    ) -> str:
        device = self.store.get_active_device(subscription.owner_id)
        if device is None or not device.push_token:
            logger.warning(
                f"Device {subscription.owner_id} not found or has no push token"
            )
            return "skipped"

        decision = decide(
            subscription,
            snapshot,
            now=now,
            threshold=self.threshold,
            repeat_interval=self.repeat_interval,
        )
        if not decision.changed:
            return "processed"

        updated = decision.subscription
        self.store.update_notification_state(
            updated.subscription_id,
            updated.last_notification_sent,
            updated.last_notification_time,
        )
        intent = build_intent(decision, device, snapshot)
        self.dispatcher.dispatch(intent)
        logger.info(
            f"Sent {decision.alert.value.upper()} alert for case "
            f"{subscription.case_identifier} to device {subscription.owner_id}"
            + (f" (position: {decision.position})" if decision.position else "")
        )
        return "alerts"
