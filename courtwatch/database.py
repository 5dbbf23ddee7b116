"""Database schema and management for CourtWatch."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .models import (
    AlertState,
    CaseStatistics,
    Device,
    HistoryEntry,
    NotificationFlags,
    NotificationIntent,
    Snapshot,
    WatchSubscription,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DatabaseManager:
    """Manages the CourtWatch database schema and operations.

    A connection is opened per operation so the polling cycle and the
    notification dispatcher threads never share one.
    """

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)

    def get_connection(self) -> sqlite3.Connection:
        """Get database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_connection()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self.connection() as conn:
            conn.executescript(
                """
            -- Devices able to receive push alerts
            CREATE TABLE IF NOT EXISTS device (
                device_id TEXT PRIMARY KEY,
                push_token TEXT,
                is_active INTEGER DEFAULT 1,
                last_seen TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            -- One row per (device, watched case)
            CREATE TABLE IF NOT EXISTS watch_subscription (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                device_id TEXT NOT NULL,
                case_identifier TEXT NOT NULL,
                courthouse TEXT,
                nickname TEXT,
                notify_early_warning INTEGER DEFAULT 1,
                notify_approaching INTEGER DEFAULT 1,
                notify_in_session INTEGER DEFAULT 1,
                notify_completed INTEGER DEFAULT 1,
                is_active INTEGER DEFAULT 1,
                last_notification_sent TEXT DEFAULT 'none',
                last_notification_time TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(device_id, case_identifier)
            );

            -- Append-only observations; natural key ignores replays
            CREATE TABLE IF NOT EXISTS case_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                case_number TEXT NOT NULL,
                court_id TEXT NOT NULL,
                scraped_at TEXT NOT NULL,
                courthouse TEXT,
                court_number TEXT,
                judge_name TEXT,
                bench_type TEXT,
                case_list TEXT,
                status TEXT,
                position INTEGER,
                serial_number TEXT,
                stream_url TEXT,
                is_live INTEGER DEFAULT 0,
                session_start_time TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(case_number, court_id, scraped_at)
            );

            -- Rolling per-case aggregate stored as a document
            CREATE TABLE IF NOT EXISTS case_statistics (
                case_number TEXT PRIMARY KEY,
                document TEXT NOT NULL,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            -- Audit trail of delivery attempts
            CREATE TABLE IF NOT EXISTS notification_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                device_id TEXT NOT NULL,
                case_number TEXT NOT NULL,
                notification_type TEXT NOT NULL,
                title TEXT,
                message TEXT,
                data TEXT DEFAULT '{}',
                success INTEGER DEFAULT 1,
                error TEXT,
                message_id TEXT,
                court_number TEXT,
                position INTEGER,
                sent_at TEXT NOT NULL
            );

            -- Periodic whole-board snapshots for analytics
            CREATE TABLE IF NOT EXISTS court_snapshot (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                courthouse TEXT,
                snapshot_time TEXT NOT NULL,
                summary TEXT DEFAULT '{}',
                courts TEXT DEFAULT '[]'
            );

            CREATE INDEX IF NOT EXISTS idx_subscription_case
                ON watch_subscription(case_identifier, is_active);
            CREATE INDEX IF NOT EXISTS idx_history_case
                ON case_history(case_number, scraped_at);
            CREATE INDEX IF NOT EXISTS idx_notification_device
                ON notification_log(device_id, sent_at);
            CREATE INDEX IF NOT EXISTS idx_snapshot_time
                ON court_snapshot(snapshot_time);
            """
            )

        logger.info("Database schema ensured")

    # -------------------------------------------------------------------------
    # Devices
    # -------------------------------------------------------------------------

    def register_device(self, device_id: str, push_token: str) -> None:
        """Register a device or refresh its token."""
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO device (device_id, push_token, is_active, last_seen)
                VALUES (?, ?, 1, ?)
                ON CONFLICT(device_id) DO UPDATE SET
                    push_token = excluded.push_token,
                    is_active = 1,
                    last_seen = excluded.last_seen
            """,
                (device_id, push_token, _now()),
            )

    def get_active_device(self, device_id: str) -> Optional[Device]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM device WHERE device_id = ? AND is_active = 1",
                (device_id,),
            ).fetchone()
        if not row:
            return None
        return Device(
            device_id=row["device_id"],
            push_token=row["push_token"],
            active=bool(row["is_active"]),
            last_seen=parse_timestamp(row["last_seen"]),
        )

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def add_subscription(
        self,
        device_id: str,
        case_identifier: str,
        flags: Optional[NotificationFlags] = None,
        courthouse: Optional[str] = None,
        nickname: Optional[str] = None,
    ) -> int:
        """Add a watch, reactivating an existing one for the same case."""
        flags = flags or NotificationFlags()
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO watch_subscription
                (device_id, case_identifier, courthouse, nickname,
                 notify_early_warning, notify_approaching, notify_in_session,
                 notify_completed, is_active)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1)
                ON CONFLICT(device_id, case_identifier) DO UPDATE SET
                    is_active = 1,
                    nickname = COALESCE(excluded.nickname, nickname),
                    notify_early_warning = excluded.notify_early_warning,
                    notify_approaching = excluded.notify_approaching,
                    notify_in_session = excluded.notify_in_session,
                    notify_completed = excluded.notify_completed
            """,
                (
                    device_id,
                    case_identifier,
                    courthouse,
                    nickname,
                    int(flags.early_warning),
                    int(flags.approaching),
                    int(flags.in_session),
                    int(flags.completed),
                ),
            )
            row = conn.execute(
                "SELECT id FROM watch_subscription WHERE device_id = ? AND case_identifier = ?",
                (device_id, case_identifier),
            ).fetchone()
            return int(row["id"])

    def deactivate_subscription(self, subscription_id: int) -> bool:
        with self.connection() as conn:
            cursor = conn.execute(
                "UPDATE watch_subscription SET is_active = 0 WHERE id = ?",
                (subscription_id,),
            )
            return cursor.rowcount > 0

    @staticmethod
    def _subscription_from_row(row: sqlite3.Row) -> WatchSubscription:
        return WatchSubscription(
            subscription_id=row["id"],
            owner_id=row["device_id"],
            case_identifier=row["case_identifier"],
            flags=NotificationFlags(
                early_warning=bool(row["notify_early_warning"]),
                approaching=bool(row["notify_approaching"]),
                in_session=bool(row["notify_in_session"]),
                completed=bool(row["notify_completed"]),
            ),
            last_notification_sent=AlertState(row["last_notification_sent"] or "none"),
            last_notification_time=parse_timestamp(row["last_notification_time"]),
            active=bool(row["is_active"]),
            courthouse=row["courthouse"],
            nickname=row["nickname"],
        )

    def get_active_subscriptions(self) -> List[WatchSubscription]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM watch_subscription WHERE is_active = 1 ORDER BY id"
            ).fetchall()
        return [self._subscription_from_row(row) for row in rows]

    def get_subscription(self, subscription_id: int) -> Optional[WatchSubscription]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM watch_subscription WHERE id = ?", (subscription_id,)
            ).fetchone()
        return self._subscription_from_row(row) if row else None

    def get_subscriptions_for_device(self, device_id: str) -> List[WatchSubscription]:
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM watch_subscription
                WHERE device_id = ? AND is_active = 1
                ORDER BY created_at DESC
            """,
                (device_id,),
            ).fetchall()
        return [self._subscription_from_row(row) for row in rows]

    def update_notification_state(
        self, subscription_id: int, state: AlertState, when: Optional[datetime]
    ) -> None:
        """Write back a subscription's notification progress."""
        with self.connection() as conn:
            conn.execute(
                """
                UPDATE watch_subscription
                SET last_notification_sent = ?, last_notification_time = ?
                WHERE id = ?
            """,
                (state.value, _ts(when), subscription_id),
            )

    def count_active_subscriptions(self, case_number: str) -> int:
        with self.connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS n FROM watch_subscription
                WHERE case_identifier = ? AND is_active = 1
            """,
                (case_number,),
            ).fetchone()
        return int(row["n"])

    def count_all_active_subscriptions(self) -> int:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM watch_subscription WHERE is_active = 1"
            ).fetchone()
        return int(row["n"])

    # -------------------------------------------------------------------------
    # History and statistics
    # -------------------------------------------------------------------------

    def insert_history(self, entries: Iterable[HistoryEntry]) -> int:
        """Append history rows; replays of an existing natural key are ignored.

        Returns:
            Number of rows actually inserted
        """
        inserted = 0
        with self.connection() as conn:
            for entry in entries:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO case_history (
                        case_number, court_id, scraped_at, courthouse, court_number,
                        judge_name, bench_type, case_list, status, position,
                        serial_number, stream_url, is_live, session_start_time
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        entry.case_number,
                        entry.court_id,
                        _ts(entry.scraped_at),
                        entry.courthouse,
                        entry.court_number,
                        entry.judge_name,
                        entry.bench_type,
                        entry.case_list,
                        entry.status,
                        entry.position,
                        entry.serial_number,
                        entry.stream_url,
                        1 if entry.is_live else 0,
                        _ts(entry.session_start_time),
                    ),
                )
                inserted += cursor.rowcount
        return inserted

    def get_case_history(self, case_number: str, limit: int = 50) -> List[Dict[str, Any]]:
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM case_history WHERE case_number = ?
                ORDER BY scraped_at DESC LIMIT ?
            """,
                (case_number, limit),
            ).fetchall()
        return [dict(row) for row in rows]

    def get_statistics(self, case_number: str) -> Optional[CaseStatistics]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT document FROM case_statistics WHERE case_number = ?",
                (case_number,),
            ).fetchone()
        if not row:
            return None
        return CaseStatistics.from_dict(json.loads(row["document"]))

    def get_most_watched(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Cases with at least one watcher, most watched first."""
        with self.connection() as conn:
            rows = conn.execute("SELECT document FROM case_statistics").fetchall()
        documents = [json.loads(row["document"]) for row in rows]
        watched = [d for d in documents if d.get("watch_count", 0) > 0]
        watched.sort(key=lambda d: d["watch_count"], reverse=True)
        return [
            {
                "caseNumber": d["case_number"],
                "watchCount": d["watch_count"],
                "totalAppearances": d.get("total_appearances", 0),
            }
            for d in watched[:limit]
        ]

    def put_statistics(self, stats: CaseStatistics) -> None:
        with self.connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO case_statistics (case_number, document, updated_at)
                VALUES (?, ?, ?)
            """,
                (stats.case_number, json.dumps(stats.to_dict()), _now()),
            )

    # -------------------------------------------------------------------------
    # Notification audit and snapshots
    # -------------------------------------------------------------------------

    def log_notification(
        self,
        intent: NotificationIntent,
        success: bool,
        error: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> None:
        position = intent.data.get("position")
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO notification_log
                (device_id, case_number, notification_type, title, message, data,
                 success, error, message_id, court_number, position, sent_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    intent.owner_id,
                    intent.case_number,
                    intent.alert_type.value,
                    intent.title,
                    intent.body,
                    json.dumps(intent.data, default=str),
                    1 if success else 0,
                    error,
                    message_id,
                    intent.data.get("court_number"),
                    int(position) if position is not None else None,
                    _now(),
                ),
            )

    def get_notifications(self, device_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM notification_log WHERE device_id = ?
                ORDER BY sent_at DESC, id DESC LIMIT ?
            """,
                (device_id, limit),
            ).fetchall()
        return [dict(row) for row in rows]

    def record_snapshot(self, snapshot: Snapshot, courthouse: Optional[str] = None) -> None:
        courts = [
            {
                "court_number": c.court_number,
                "judge_name": c.judge_name,
                "case_number": c.case_number,
                "status": c.case_status.value,
                "is_live": c.is_live,
            }
            for c in snapshot.courts
        ]
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO court_snapshot (courthouse, snapshot_time, summary, courts)
                VALUES (?, ?, ?, ?)
            """,
                (
                    courthouse,
                    _ts(snapshot.scraped_at),
                    json.dumps(snapshot.summary()),
                    json.dumps(courts),
                ),
            )

    def get_database_stats(self) -> Dict[str, int]:
        with self.connection() as conn:
            stats = {}
            for table in (
                "device",
                "watch_subscription",
                "case_history",
                "case_statistics",
                "notification_log",
                "court_snapshot",
            ):
                stats[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        return stats

    def health_check(self) -> Dict[str, str]:
        try:
            with self.connection() as conn:
                conn.execute("SELECT 1").fetchone()
            return {"database": "ok"}
        except sqlite3.Error as e:
            logger.error(f"Database health check failed: {e}")
            return {"database": "error", "error": str(e)}
