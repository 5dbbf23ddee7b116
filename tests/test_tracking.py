"""Tests for the per-subscription notification state machine."""

from datetime import timedelta
from typing import Dict, List, Optional

import pytest

from courtwatch.models import (
    AlertState,
    CaseStatus,
    Device,
    NotificationFlags,
    WatchSubscription,
)
from courtwatch.tracking import CaseTracker, build_intent, decide, format_alert

from tests.board_stubs import SCRAPED_AT

NOW = SCRAPED_AT


def _subscription(
    case: str = "W/1/2024",
    state: AlertState = AlertState.NONE,
    when=None,
    flags: Optional[NotificationFlags] = None,
    subscription_id: int = 1,
    owner: str = "device-1",
) -> WatchSubscription:
    return WatchSubscription(
        subscription_id=subscription_id,
        owner_id=owner,
        case_identifier=case,
        flags=flags or NotificationFlags(),
        last_notification_sent=state,
        last_notification_time=when,
    )


@pytest.fixture
def queue_at(record, snapshot_of):
    """Snapshot where the watched case sits at ``position`` in court 3."""

    def _make(position: int, case: str = "W/1/2024", status=CaseStatus.RECESS):
        ahead = [
            record("3", f"AHEAD/{n}/2024", queue_position=n, court_id=f"C3-{n}")
            for n in range(1, position)
        ]
        watched = record("3", case, status=status, queue_position=position, court_id="C3-w")
        return snapshot_of(*ahead, watched)

    return _make


class TestDecide:
    def test_early_warning_fires_once(self, queue_at) -> None:
        snapshot = queue_at(3)
        decision = decide(_subscription(), snapshot, now=NOW, threshold=5)
        assert decision.alert is AlertState.EARLY_WARNING
        assert decision.position == 3
        assert decision.new_state is AlertState.EARLY_WARNING
        assert decision.subscription.last_notification_time == NOW

        again = decide(decision.subscription, snapshot, now=NOW + timedelta(seconds=30))
        assert again.alert is None
        assert again.new_state is AlertState.EARLY_WARNING

    def test_decide_does_not_mutate_input(self, queue_at) -> None:
        subscription = _subscription()
        decide(subscription, queue_at(3), now=NOW)
        assert subscription.last_notification_sent is AlertState.NONE
        assert subscription.last_notification_time is None

    def test_beyond_threshold_is_quiet(self, queue_at) -> None:
        decision = decide(_subscription(), queue_at(6), now=NOW, threshold=5)
        assert decision.alert is None
        assert decision.position == 6

    def test_threshold_is_inclusive(self, queue_at) -> None:
        decision = decide(_subscription(), queue_at(5), now=NOW, threshold=5)
        assert decision.alert is AlertState.EARLY_WARNING

    def test_approaching_at_front_of_queue(self, queue_at) -> None:
        for state in (AlertState.NONE, AlertState.EARLY_WARNING, AlertState.COMPLETED):
            decision = decide(_subscription(state=state), queue_at(1), now=NOW)
            assert decision.alert is AlertState.APPROACHING
            assert decision.position == 1

    def test_approaching_not_repeated(self, queue_at) -> None:
        for state in (AlertState.APPROACHING, AlertState.IN_SESSION):
            assert decide(_subscription(state=state), queue_at(1), now=NOW).alert is None

    def test_early_warning_not_sent_after_approaching(self, queue_at) -> None:
        decision = decide(_subscription(state=AlertState.APPROACHING), queue_at(3), now=NOW)
        assert decision.alert is None

    def test_in_session_repeats_after_interval(self, queue_at) -> None:
        snapshot = queue_at(1, status=CaseStatus.IN_SESSION)
        two_minutes = _subscription(
            state=AlertState.IN_SESSION, when=NOW - timedelta(minutes=2)
        )
        assert decide(two_minutes, snapshot, now=NOW).alert is None

        six_minutes = _subscription(
            state=AlertState.IN_SESSION, when=NOW - timedelta(minutes=6)
        )
        decision = decide(six_minutes, snapshot, now=NOW)
        assert decision.alert is AlertState.IN_SESSION
        assert decision.subscription.last_notification_time == NOW

    def test_in_session_fires_from_any_other_state(self, queue_at) -> None:
        snapshot = queue_at(4, status=CaseStatus.IN_SESSION)
        decision = decide(_subscription(), snapshot, now=NOW)
        assert decision.alert is AlertState.IN_SESSION
        assert decision.position is None

    def test_completed_when_case_leaves_board(self, snapshot_of, record) -> None:
        empty = snapshot_of(record("3", "SOMETHING/ELSE/1", queue_position=1))
        decision = decide(_subscription(state=AlertState.APPROACHING), empty, now=NOW)
        assert decision.alert is AlertState.COMPLETED

        again = decide(decision.subscription, empty, now=NOW + timedelta(minutes=1))
        assert again.alert is None
        assert again.new_state is AlertState.COMPLETED

    @pytest.mark.parametrize("state", [AlertState.NONE, AlertState.EARLY_WARNING])
    def test_absent_case_without_hearing_is_quiet(self, snapshot_of, state) -> None:
        assert decide(_subscription(state=state), snapshot_of(), now=NOW).alert is None

    def test_unknown_status_changes_nothing(self, queue_at) -> None:
        snapshot = queue_at(2, status=CaseStatus.UNKNOWN)
        decision = decide(_subscription(state=AlertState.EARLY_WARNING), snapshot, now=NOW)
        assert decision.alert is None
        assert decision.record is not None

    def test_disabled_flags_suppress_alerts(self, queue_at, snapshot_of) -> None:
        none_wanted = NotificationFlags(
            early_warning=False, approaching=False, in_session=False, completed=False
        )
        assert decide(_subscription(flags=none_wanted), queue_at(3), now=NOW).alert is None
        assert decide(_subscription(flags=none_wanted), queue_at(1), now=NOW).alert is None
        in_session = queue_at(1, status=CaseStatus.IN_SESSION)
        assert decide(_subscription(flags=none_wanted), in_session, now=NOW).alert is None
        gone = _subscription(state=AlertState.IN_SESSION, flags=none_wanted)
        assert decide(gone, snapshot_of(), now=NOW).alert is None

    def test_scoped_identifier_is_tracked(self, queue_at) -> None:
        decision = decide(_subscription(case="COURT:3:4"), queue_at(4), now=NOW)
        assert decision.alert is AlertState.EARLY_WARNING
        assert decision.record.case_number == "W/1/2024"

    def test_alerts_follow_hearing_order_then_rearm(self, queue_at, snapshot_of) -> None:
        cycles = [
            queue_at(8),
            queue_at(4),
            queue_at(3),
            queue_at(1),
            queue_at(1, status=CaseStatus.IN_SESSION),
            queue_at(1, status=CaseStatus.IN_SESSION),
            snapshot_of(),
            snapshot_of(),
            queue_at(2),
        ]
        subscription = _subscription()
        emitted: List[AlertState] = []
        for minute, snapshot in enumerate(cycles):
            decision = decide(subscription, snapshot, now=NOW + timedelta(minutes=minute))
            if decision.alert is not None:
                emitted.append(decision.alert)
            subscription = decision.subscription

        assert emitted == [
            AlertState.EARLY_WARNING,
            AlertState.APPROACHING,
            AlertState.IN_SESSION,
            AlertState.COMPLETED,
            AlertState.EARLY_WARNING,
        ]


class TestFormatting:
    def test_titles_name_the_case(self) -> None:
        details = {"court_number": "3", "position": 4, "judge_name": "J"}
        early = format_alert(AlertState.EARLY_WARNING, "W/1/2024", details)
        assert early["title"] == "⚠️ Case Approaching - W/1/2024"
        assert early["body"] == "Your case is 4 cases away in Court 3"
        assert "next in line" in format_alert(AlertState.APPROACHING, "W", details)["body"]
        assert format_alert(AlertState.IN_SESSION, "W", details)["body"].endswith("- J")
        assert "ended" in format_alert(AlertState.COMPLETED, "W", details)["body"]

    def test_state_without_message_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            format_alert(AlertState.NONE, "W/1/2024", {"court_number": "3"})

    def test_build_intent_carries_court_details(self, queue_at) -> None:
        snapshot = queue_at(2)
        decision = decide(_subscription(), snapshot, now=NOW)
        intent = build_intent(decision, Device("device-1", "tok"), snapshot)
        assert intent.owner_id == "device-1"
        assert intent.delivery_token == "tok"
        assert intent.alert_type is AlertState.EARLY_WARNING
        assert intent.subscription_id == 1
        assert intent.data["court_number"] == "3"
        assert intent.data["position"] == 2
        assert intent.data["total_cases"] == 2
        payload = intent.data_payload()
        assert payload["type"] == "early_warning"
        assert payload["position"] == "2"
        assert all(isinstance(v, str) for v in payload.values())

    def test_build_intent_without_alert_is_rejected(self, queue_at) -> None:
        decision = decide(_subscription(), queue_at(9), now=NOW)
        with pytest.raises(ValueError):
            build_intent(decision, Device("device-1", "tok"), queue_at(9))


class FakeStore:
    def __init__(self, subscriptions, devices: Dict[str, Device], events: list):
        self.subscriptions = subscriptions
        self.devices = devices
        self.events = events
        self.fail_for: Optional[int] = None

    def get_active_subscriptions(self):
        return list(self.subscriptions)

    def get_active_device(self, device_id):
        return self.devices.get(device_id)

    def update_notification_state(self, subscription_id, state, when):
        if subscription_id == self.fail_for:
            raise RuntimeError("database is locked")
        self.events.append(("persist", subscription_id, state))


class FakeDispatcher:
    def __init__(self, events: list):
        self.events = events
        self.intents = []

    def dispatch(self, intent):
        self.events.append(("dispatch", intent.subscription_id, intent.alert_type))
        self.intents.append(intent)


class TestCaseTracker:
    def test_persists_before_dispatch(self, queue_at) -> None:
        events: list = []
        store = FakeStore([_subscription()], {"device-1": Device("device-1", "tok")}, events)
        tracker = CaseTracker(store, FakeDispatcher(events))

        counts = tracker.process(queue_at(3), now=NOW)

        assert counts == {"processed": 0, "alerts": 1, "skipped": 0, "errors": 0}
        assert events == [
            ("persist", 1, AlertState.EARLY_WARNING),
            ("dispatch", 1, AlertState.EARLY_WARNING),
        ]

    def test_device_without_token_is_skipped(self, queue_at) -> None:
        events: list = []
        subscriptions = [
            _subscription(subscription_id=1, owner="no-token"),
            _subscription(subscription_id=2, owner="missing"),
        ]
        store = FakeStore(subscriptions, {"no-token": Device("no-token", None)}, events)
        counts = CaseTracker(store, FakeDispatcher(events)).process(queue_at(3), now=NOW)
        assert counts["skipped"] == 2
        assert events == []

    def test_one_failure_does_not_stop_the_cycle(self, queue_at) -> None:
        events: list = []
        devices = {"device-1": Device("device-1", "tok")}
        subscriptions = [_subscription(subscription_id=1), _subscription(subscription_id=2)]
        store = FakeStore(subscriptions, devices, events)
        store.fail_for = 1
        dispatcher = FakeDispatcher(events)

        counts = CaseTracker(store, dispatcher).process(queue_at(3), now=NOW)

        assert counts["errors"] == 1
        assert counts["alerts"] == 1
        assert [i.subscription_id for i in dispatcher.intents] == [2]

    def test_quiet_cycle_counts_processed(self, queue_at) -> None:
        events: list = []
        store = FakeStore(
            [_subscription(state=AlertState.EARLY_WARNING)],
            {"device-1": Device("device-1", "tok")},
            events,
        )
        counts = CaseTracker(store, FakeDispatcher(events)).process(queue_at(3), now=NOW)
        assert counts["processed"] == 1
        assert events == []

    def test_threshold_is_configurable(self, queue_at) -> None:
        events: list = []
        store = FakeStore([_subscription()], {"device-1": Device("device-1", "tok")}, events)
        tracker = CaseTracker(store, FakeDispatcher(events), threshold=2)
        assert tracker.process(queue_at(3), now=NOW)["alerts"] == 0

    def test_no_subscriptions(self, snapshot_of) -> None:
        store = FakeStore([], {}, [])
        counts = CaseTracker(store, FakeDispatcher([])).process(snapshot_of(), now=NOW)
        assert counts == {"processed": 0, "alerts": 0, "skipped": 0, "errors": 0}
