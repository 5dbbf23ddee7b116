"""Tests for queue position resolution and case lookup."""

import pytest

from courtwatch.models import CaseStatus
from courtwatch.queue import (
    court_queue,
    find_case,
    group_by_court,
    parse_case_identifier,
    resolve_position,
)


@pytest.fixture
def court_five(record):
    return [
        record("5", "A/1/2024", queue_position=10),
        record("5", "B/2/2024", queue_position=12),
        record("5", "C/3/2024", queue_position=15),
    ]


class TestResolvePosition:
    def test_counts_pending_cases_ahead(self, court_five) -> None:
        assert resolve_position("A/1/2024", "5", court_five) == 1
        assert resolve_position("B/2/2024", "5", court_five) == 2
        assert resolve_position("C/3/2024", "5", court_five) == 3

    def test_is_repeatable(self, court_five) -> None:
        first = resolve_position("B/2/2024", "5", court_five)
        assert resolve_position("B/2/2024", "5", court_five) == first

    def test_in_session_and_sitting_over_are_not_ahead(self, record) -> None:
        courts = [
            record("5", "A/1/2024", status=CaseStatus.IN_SESSION, queue_position=10),
            record("5", "X/9/2024", status=CaseStatus.SITTING_OVER, queue_position=11),
            record("5", "B/2/2024", queue_position=12),
        ]
        assert resolve_position("B/2/2024", "5", courts) == 1

    def test_other_courts_are_ignored(self, court_five, record) -> None:
        courts = court_five + [record("6", "Z/1/2024", queue_position=1)]
        assert resolve_position("A/1/2024", "5", courts) == 1
        assert resolve_position("Z/1/2024", "5", courts) is None

    def test_absent_or_not_pending_case_has_no_position(self, record) -> None:
        courts = [record("5", "A/1/2024", status=CaseStatus.IN_SESSION, queue_position=1)]
        assert resolve_position("A/1/2024", "5", courts) is None
        assert resolve_position("NOPE/1/2024", "5", courts) is None
        assert resolve_position(None, "5", courts) is None

    def test_falls_back_to_feed_order_without_serials(self, record) -> None:
        courts = [
            record("5", "A/1/2024"),
            record("5", "B/2/2024", status=CaseStatus.IN_SESSION),
            record("5", "C/3/2024"),
        ]
        assert resolve_position("A/1/2024", "5", courts) == 1
        assert resolve_position("C/3/2024", "5", courts) == 2

    def test_unknown_status_counts_as_pending(self, record) -> None:
        courts = [
            record("5", "A/1/2024", status=CaseStatus.UNKNOWN, queue_position=3),
            record("5", "B/2/2024", queue_position=4),
        ]
        assert resolve_position("B/2/2024", "5", courts) == 2


class TestParseCaseIdentifier:
    def test_plain_case_number(self) -> None:
        parsed = parse_case_identifier(" SCA/1/2024 ")
        assert parsed.case_number == "SCA/1/2024"
        assert parsed.court_number is None
        assert not parsed.is_scoped

    def test_scoped_position(self) -> None:
        parsed = parse_case_identifier("COURT:5:12")
        assert parsed.court_number == "5"
        assert parsed.position == 12
        assert parsed.case_number is None

    def test_scoped_case_number_is_case_insensitive_prefix(self) -> None:
        parsed = parse_case_identifier("court:7:SCA/1/2024")
        assert parsed.court_number == "7"
        assert parsed.case_number == "SCA/1/2024"
        assert parsed.position is None


class TestFindCase:
    def test_scoped_position_matches_court_and_serial(self, court_five, record) -> None:
        courts = court_five + [record("6", "Q/1/2024", queue_position=12)]
        assert find_case(courts, "COURT:5:12").case_number == "B/2/2024"
        assert find_case(courts, "COURT:6:12").case_number == "Q/1/2024"
        assert find_case(courts, "COURT:7:12") is None

    def test_scoped_case_number_requires_matching_court(self, court_five) -> None:
        assert find_case(court_five, "COURT:5:C/3/2024").queue_position == 15
        assert find_case(court_five, "COURT:6:C/3/2024") is None

    def test_plain_case_number_matches_any_court(self, court_five) -> None:
        assert find_case(court_five, "A/1/2024").court_number == "5"
        assert find_case(court_five, "missing") is None
        assert find_case(court_five, "") is None


def test_group_by_court_keeps_feed_order(record) -> None:
    courts = [record("2", "B"), record("1", "A"), record("2", "C")]
    grouped = group_by_court(courts)
    assert list(grouped) == ["2", "1"]
    assert [c.case_number for c in grouped["2"]] == ["B", "C"]


def test_court_queue_view(record) -> None:
    courts = [
        record("5", "NOW/1/2024", status=CaseStatus.IN_SESSION, queue_position=9),
        record("5", "C/3/2024", queue_position=15),
        record("5", "A/1/2024", queue_position=10),
        record("4", "OTHER/1/2024", queue_position=1),
    ]
    view = court_queue("5", courts)
    assert view["courtNumber"] == "5"
    assert view["currentCase"] == "NOW/1/2024"
    assert view["totalCases"] == 2
    assert [(q["caseNumber"], q["position"]) for q in view["queue"]] == [
        ("A/1/2024", 1),
        ("C/3/2024", 2),
    ]
