"""Tests for the SQLite persistence layer."""

from datetime import timedelta, timezone

from courtwatch.models import (
    AlertState,
    HistoryEntry,
    NotificationFlags,
    NotificationIntent,
    parse_timestamp,
)

from tests.board_stubs import SCRAPED_AT


def test_schema_is_idempotent(temp_db) -> None:
    temp_db.ensure_schema()
    stats = temp_db.get_database_stats()
    assert set(stats) == {
        "device",
        "watch_subscription",
        "case_history",
        "case_statistics",
        "notification_log",
        "court_snapshot",
    }
    assert all(count == 0 for count in stats.values())


def test_device_registration_refreshes_token(temp_db) -> None:
    temp_db.register_device("device-1", "old-token")
    temp_db.register_device("device-1", "new-token")
    device = temp_db.get_active_device("device-1")
    assert device.push_token == "new-token"
    assert device.last_seen is not None

    assert temp_db.get_active_device("unknown") is None


def test_subscription_round_trip(temp_db) -> None:
    flags = NotificationFlags(early_warning=False, completed=False)
    sub_id = temp_db.add_subscription(
        "device-1", "COURT:3:12", flags=flags, courthouse="Test HC", nickname="Appeal"
    )
    subscription = temp_db.get_subscription(sub_id)
    assert subscription.owner_id == "device-1"
    assert subscription.case_identifier == "COURT:3:12"
    assert subscription.flags == flags
    assert subscription.last_notification_sent is AlertState.NONE
    assert subscription.last_notification_time is None
    assert subscription.courthouse == "Test HC"
    assert subscription.nickname == "Appeal"


def test_re_adding_reactivates_same_subscription(temp_db) -> None:
    first = temp_db.add_subscription("device-1", "SCA/1/2024", nickname="Mine")
    temp_db.deactivate_subscription(first)
    assert temp_db.get_active_subscriptions() == []

    second = temp_db.add_subscription("device-1", "SCA/1/2024")
    assert second == first
    active = temp_db.get_active_subscriptions()
    assert [s.subscription_id for s in active] == [first]
    assert active[0].nickname == "Mine"


def test_notification_state_write_back(temp_db) -> None:
    sub_id = temp_db.add_subscription("device-1", "SCA/1/2024")
    temp_db.update_notification_state(sub_id, AlertState.IN_SESSION, SCRAPED_AT)
    subscription = temp_db.get_subscription(sub_id)
    assert subscription.last_notification_sent is AlertState.IN_SESSION
    assert subscription.last_notification_time == SCRAPED_AT


def test_timestamps_without_zone_read_back_as_utc(temp_db) -> None:
    sub_id = temp_db.add_subscription("device-1", "SCA/1/2024")
    temp_db.update_notification_state(
        sub_id, AlertState.APPROACHING, SCRAPED_AT.replace(tzinfo=None)
    )
    when = temp_db.get_subscription(sub_id).last_notification_time
    assert when == SCRAPED_AT
    assert when.tzinfo is timezone.utc

    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None


def test_subscriptions_for_device(temp_db) -> None:
    temp_db.add_subscription("device-1", "A")
    temp_db.add_subscription("device-1", "B")
    temp_db.add_subscription("device-2", "A")
    cases = {s.case_identifier for s in temp_db.get_subscriptions_for_device("device-1")}
    assert cases == {"A", "B"}
    assert temp_db.count_active_subscriptions("A") == 2


def test_notification_log(temp_db) -> None:
    intent = NotificationIntent(
        owner_id="device-1",
        delivery_token="tok",
        case_number="SCA/1/2024",
        alert_type=AlertState.EARLY_WARNING,
        title="t",
        body="b",
        data={"court_number": "3", "position": 4, "scraped": SCRAPED_AT},
    )
    temp_db.log_notification(intent, success=True, message_id="m-1")
    temp_db.log_notification(intent, success=False, error="gateway down")

    entries = temp_db.get_notifications("device-1")
    assert [e["success"] for e in entries] == [0, 1]
    assert entries[0]["error"] == "gateway down"
    assert entries[1]["message_id"] == "m-1"
    assert entries[1]["court_number"] == "3"
    assert entries[1]["position"] == 4
    assert temp_db.get_notifications("device-2") == []


def test_case_history_newest_first(temp_db, record) -> None:
    entries = [
        HistoryEntry.from_record(
            record("1", "SCA/1/2024", scraped_at=SCRAPED_AT + timedelta(minutes=i))
        )
        for i in range(3)
    ]
    assert temp_db.insert_history(entries) == 3
    history = temp_db.get_case_history("SCA/1/2024", limit=2)
    assert len(history) == 2
    assert history[0]["scraped_at"] > history[1]["scraped_at"]


def test_health_check(temp_db) -> None:
    assert temp_db.health_check() == {"database": "ok"}
