"""Pytest configuration and fixtures."""

from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

import pytest
import requests_mock

from courtwatch.config import Settings
from courtwatch.database import DatabaseManager
from courtwatch.models import BenchType, CaseStatus, CourtRecord, Snapshot
from tests.board_stubs import (
    BOARD_URL,
    FEED_URL,
    ORIGIN,
    SAMPLE_MARKUP,
    SAMPLE_ROWS,
    SCRAPED_AT,
    RecordingNotifier,
)


@pytest.fixture
def sample_rows() -> List[object]:
    return [dict(row) if isinstance(row, dict) else row for row in SAMPLE_ROWS]


@pytest.fixture
def sample_markup() -> str:
    return SAMPLE_MARKUP


@pytest.fixture
def record() -> Callable[..., CourtRecord]:
    """Factory for court records with sensible defaults."""

    def _make(
        court_number: str,
        case_number: Optional[str] = None,
        status: CaseStatus = CaseStatus.RECESS,
        queue_position: Optional[int] = None,
        court_id: Optional[str] = None,
        scraped_at: datetime = SCRAPED_AT,
        judge_name: str = "HON'BLE JUSTICE TEST",
    ) -> CourtRecord:
        return CourtRecord(
            court_id=court_id or f"C{court_number}",
            court_number=court_number,
            judge_name=judge_name,
            bench_type=BenchType.SINGLE,
            is_live=False,
            case_status=status,
            case_number=case_number,
            queue_position=queue_position,
            stream_url=f"https://stream.example.test/{court_number}",
            serial_number=str(queue_position) if queue_position is not None else None,
            scraped_at=scraped_at,
        )

    return _make


@pytest.fixture
def snapshot_of() -> Callable[..., Snapshot]:
    """Build a snapshot from records."""

    def _make(*courts: CourtRecord, scraped_at: datetime = SCRAPED_AT) -> Snapshot:
        return Snapshot(scraped_at=scraped_at, courts=tuple(courts))

    return _make


@pytest.fixture
def temp_db(tmp_path: Path) -> DatabaseManager:
    """A DatabaseManager on a fresh SQLite file with the schema applied."""
    database = DatabaseManager(str(tmp_path / "courtwatch-test.db"))
    database.ensure_schema()
    return database


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        database_file=str(tmp_path / "courtwatch-service.db"),
        court_base_url=BOARD_URL,
        court_origin=ORIGIN,
        push_gateway_url="https://push.example.test/send",
        push_gateway_key="test-key",
        log_level="DEBUG",
        dry_run=False,
    )


@pytest.fixture
def mock_board(sample_rows, sample_markup):
    """Mock both streaming board endpoints."""
    with requests_mock.Mocker() as m:
        m.get(FEED_URL, json=[r for r in sample_rows if isinstance(r, dict)])
        m.get(BOARD_URL, text=sample_markup)
        yield m


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()
