"""
CourtWatch data model - court records, snapshots and watch subscriptions

Records produced by the normalizer are immutable; a new fetch produces an
entirely new set. Subscriptions are owned by the persistence layer and only
their notification progress is written back by the tracker.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

_LEADING_NUMBER = re.compile(r"^\s*(\d+)")


class CaseStatus(Enum):
    """What a courtroom is doing with its current case."""

    IN_SESSION = "IN_SESSION"
    RECESS = "RECESS"
    SITTING_OVER = "SITTING_OVER"
    UNKNOWN = "UNKNOWN"


class BenchType(Enum):
    """Bench composition, inferred from the number of judge photos."""

    SINGLE = "Single Bench"
    DIVISION = "Division Bench"


class AlertState(Enum):
    """Notification progress of a watch subscription."""

    NONE = "none"
    EARLY_WARNING = "early_warning"
    APPROACHING = "approaching"
    IN_SESSION = "in_session"
    COMPLETED = "completed"


# Statuses that take a case out of the waiting queue.
NOT_PENDING = frozenset({CaseStatus.IN_SESSION, CaseStatus.SITTING_OVER})


def court_sort_key(court_number: str) -> int:
    """Numeric sort key for a display court number; non-numeric sorts last."""
    match = _LEADING_NUMBER.match(court_number or "")
    return int(match.group(1)) if match else 9999


@dataclass(frozen=True)
class CourtRecord:
    """One courtroom's current occupant, as of a single fetch."""

    court_id: str
    court_number: str
    judge_name: str
    bench_type: BenchType
    is_live: bool
    case_status: CaseStatus
    scraped_at: datetime
    case_number: Optional[str] = None
    queue_position: Optional[int] = None
    stream_url: Optional[str] = None

    # Descriptive fields carried through from the board
    serial_number: Optional[str] = None
    case_list: Optional[str] = None
    judge_photos: Tuple[str, ...] = ()
    page_number: int = 1

    @property
    def is_active(self) -> bool:
        return self.is_live or self.case_status in (
            CaseStatus.IN_SESSION,
            CaseStatus.RECESS,
        )

    @property
    def is_pending(self) -> bool:
        """Still waiting to be heard (not being heard, not finished)."""
        return self.case_status not in NOT_PENDING

    @property
    def has_stream(self) -> bool:
        return bool(self.stream_url)

    @property
    def judge_count(self) -> int:
        return len(self.judge_photos)

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to a JSON-friendly dictionary."""
        return {
            "id": self.court_id,
            "courtNumber": self.court_number,
            "judgeName": self.judge_name,
            "judgeCount": self.judge_count,
            "benchType": self.bench_type.value,
            "isLive": self.is_live,
            "caseNumber": self.case_number,
            "caseStatus": self.case_status.value,
            "queuePosition": self.queue_position,
            "srNo": self.serial_number,
            "caseList": self.case_list,
            "streamUrl": self.stream_url,
            "hasStream": self.has_stream,
            "judgePhotos": list(self.judge_photos),
            "isActive": self.is_active,
            "pageNumber": self.page_number,
            "scrapedAt": self.scraped_at.isoformat(),
        }


@dataclass(frozen=True)
class Snapshot:
    """One fetch cycle's full set of normalized court records."""

    scraped_at: datetime
    courts: Tuple[CourtRecord, ...] = ()
    current_date: Optional[str] = None

    def summary(self) -> Dict[str, int]:
        """Headline counts for logging, broadcast and analytics."""
        courts = self.courts
        return {
            "total": len(courts),
            "live": sum(1 for c in courts if c.is_live),
            "active": sum(1 for c in courts if c.is_active),
            "recess": sum(1 for c in courts if c.case_status is CaseStatus.RECESS),
            "sitting_over": sum(
                1 for c in courts if c.case_status is CaseStatus.SITTING_OVER
            ),
            "in_session": sum(
                1 for c in courts if c.case_status is CaseStatus.IN_SESSION
            ),
            "with_stream": sum(1 for c in courts if c.has_stream),
            "division_bench": sum(
                1 for c in courts if c.bench_type is BenchType.DIVISION
            ),
            "single_bench": sum(1 for c in courts if c.bench_type is BenchType.SINGLE),
            "with_case_number": sum(1 for c in courts if c.case_number),
            "with_serial_number": sum(1 for c in courts if c.serial_number),
            "with_queue_position": sum(
                1 for c in courts if c.queue_position is not None
            ),
        }

    def by_case_list(self) -> Dict[str, List[CourtRecord]]:
        grouped: Dict[str, List[CourtRecord]] = {}
        for court in self.courts:
            grouped.setdefault(court.case_list or "No List", []).append(court)
        return grouped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scrapedAt": self.scraped_at.isoformat(),
            "currentDate": self.current_date,
            "summary": self.summary(),
            "courts": [c.to_dict() for c in self.courts],
        }


@dataclass(frozen=True)
class NotificationFlags:
    """Which alerts a subscriber wants; each one is independently togglable."""

    early_warning: bool = True
    approaching: bool = True
    in_session: bool = True
    completed: bool = True


@dataclass
class WatchSubscription:
    """One user's standing interest in one case.

    The identifier is either a bare case number or a scoped reference of the
    form ``COURT:<court number>:<queue position>`` or
    ``COURT:<court number>:<case number>``.
    """

    subscription_id: int
    owner_id: str
    case_identifier: str
    flags: NotificationFlags = field(default_factory=NotificationFlags)
    last_notification_sent: AlertState = AlertState.NONE
    last_notification_time: Optional[datetime] = None
    active: bool = True
    courthouse: Optional[str] = None
    nickname: Optional[str] = None

    def advanced(self, state: AlertState, when: datetime) -> "WatchSubscription":
        """Copy of this subscription with its notification progress moved on."""
        return replace(self, last_notification_sent=state, last_notification_time=when)


@dataclass(frozen=True)
class Device:
    """A registered device able to receive push alerts."""

    device_id: str
    push_token: Optional[str]
    active: bool = True
    last_seen: Optional[datetime] = None


@dataclass(frozen=True)
class HistoryEntry:
    """One observation of a case in a snapshot.

    The natural key is ``(case_number, court_id, scraped_at)``.
    """

    case_number: str
    court_id: str
    scraped_at: datetime
    courthouse: Optional[str] = None
    court_number: Optional[str] = None
    judge_name: Optional[str] = None
    bench_type: Optional[str] = None
    case_list: Optional[str] = None
    status: Optional[str] = None
    position: Optional[int] = None
    serial_number: Optional[str] = None
    stream_url: Optional[str] = None
    is_live: bool = False
    session_start_time: Optional[datetime] = None

    @classmethod
    def from_record(
        cls, record: CourtRecord, courthouse: Optional[str] = None
    ) -> "HistoryEntry":
        if not record.case_number:
            raise ValueError("history entries require a case number")
        return cls(
            case_number=record.case_number,
            court_id=record.court_id,
            scraped_at=record.scraped_at,
            courthouse=courthouse,
            court_number=record.court_number,
            judge_name=record.judge_name,
            bench_type=record.bench_type.value,
            case_list=record.case_list,
            status=record.case_status.value,
            position=record.queue_position,
            serial_number=record.serial_number,
            stream_url=record.stream_url,
            is_live=record.is_live,
            session_start_time=(
                record.scraped_at
                if record.case_status is CaseStatus.IN_SESSION
                else None
            ),
        )


@dataclass
class CaseStatistics:
    """Rolling per-case aggregate, keyed by case number."""

    case_number: str
    courthouse: Optional[str] = None
    total_appearances: int = 0
    courts_seen: List[str] = field(default_factory=list)
    judges_seen: List[str] = field(default_factory=list)
    status_history: List[Dict[str, Any]] = field(default_factory=list)
    watch_count: int = 0
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None

    def record_appearance(
        self, record: CourtRecord, history_limit: int = 100
    ) -> None:
        """Fold one observation of the case into the aggregate."""
        seen_at = record.scraped_at
        if self.first_seen is None:
            self.first_seen = seen_at
        self.last_seen = seen_at
        self.total_appearances += 1

        if record.court_number not in self.courts_seen:
            self.courts_seen.append(record.court_number)
        if record.judge_name not in self.judges_seen:
            self.judges_seen.append(record.judge_name)

        self.status_history.append(
            {
                "status": record.case_status.value,
                "timestamp": seen_at.isoformat(),
                "court_number": record.court_number,
                "queue_position": record.queue_position,
                "serial_number": record.serial_number,
            }
        )
        # Oldest entries drop first
        if len(self.status_history) > history_limit:
            self.status_history = self.status_history[-history_limit:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_number": self.case_number,
            "courthouse": self.courthouse,
            "total_appearances": self.total_appearances,
            "courts_seen": list(self.courts_seen),
            "judges_seen": list(self.judges_seen),
            "status_history": list(self.status_history),
            "watch_count": self.watch_count,
            "first_seen": self.first_seen.isoformat() if self.first_seen else None,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaseStatistics":
        return cls(
            case_number=data["case_number"],
            courthouse=data.get("courthouse"),
            total_appearances=int(data.get("total_appearances", 0)),
            courts_seen=list(data.get("courts_seen", [])),
            judges_seen=list(data.get("judges_seen", [])),
            status_history=list(data.get("status_history", [])),
            watch_count=int(data.get("watch_count", 0)),
            first_seen=parse_timestamp(data.get("first_seen")),
            last_seen=parse_timestamp(data.get("last_seen")),
        )


@dataclass(frozen=True)
class NotificationIntent:
    """An alert the tracker decided to send, ready for the delivery provider."""

    owner_id: str
    delivery_token: str
    case_number: str
    alert_type: AlertState
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    subscription_id: Optional[int] = None

    def data_payload(self) -> Dict[str, str]:
        """Flat string map, as push providers require for data messages."""
        payload = {
            "type": self.alert_type.value,
            "caseNumber": self.case_number,
            "courtNumber": str(self.data.get("court_number") or ""),
            "judgeName": str(self.data.get("judge_name") or ""),
            "streamUrl": str(self.data.get("stream_url") or ""),
            "position": str(self.data.get("position") or 0),
        }
        return payload


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp, treating naive values as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
