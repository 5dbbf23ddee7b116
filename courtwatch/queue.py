"""Queue position resolution and case lookup over a snapshot's court records."""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .models import CaseStatus, CourtRecord

_SCOPED_IDENTIFIER = re.compile(r"^COURT:(\d+):(.+)$", re.IGNORECASE)


@dataclass(frozen=True)
class CaseIdentifier:
    """A parsed watch target.

    ``court_number`` is set only for scoped identifiers; exactly one of
    ``position`` and ``case_number`` is set.
    """

    original: str
    case_number: Optional[str] = None
    court_number: Optional[str] = None
    position: Optional[int] = None

    @property
    def is_scoped(self) -> bool:
        return self.court_number is not None


def parse_case_identifier(identifier: str) -> CaseIdentifier:
    """Parse ``COURT:<n>:<position>``, ``COURT:<n>:<case number>`` or a plain number."""
    text = (identifier or "").strip()
    match = _SCOPED_IDENTIFIER.match(text)
    if match:
        court_number, remainder = match.group(1), match.group(2).strip()
        if remainder.isdigit():
            return CaseIdentifier(
                original=identifier, court_number=court_number, position=int(remainder)
            )
        return CaseIdentifier(
            original=identifier, court_number=court_number, case_number=remainder
        )
    return CaseIdentifier(original=identifier, case_number=text)


def find_case(
    courts: Sequence[CourtRecord], identifier: str
) -> Optional[CourtRecord]:
    """Locate a watched case; scoped references match on court as well."""
    parsed = parse_case_identifier(identifier)

    if parsed.position is not None:
        return next(
            (
                c
                for c in courts
                if c.court_number == parsed.court_number
                and c.queue_position == parsed.position
            ),
            None,
        )
    if parsed.is_scoped:
        return next(
            (
                c
                for c in courts
                if c.court_number == parsed.court_number
                and c.case_number == parsed.case_number
            ),
            None,
        )
    if not parsed.case_number:
        return None
    return next((c for c in courts if c.case_number == parsed.case_number), None)


def group_by_court(courts: Sequence[CourtRecord]) -> Dict[str, List[CourtRecord]]:
    """Group records by court number, keeping feed order within each group."""
    grouped: Dict[str, List[CourtRecord]] = {}
    for court in courts:
        grouped.setdefault(court.court_number, []).append(court)
    return grouped


def _position_in(target: CourtRecord, same_court: Sequence[CourtRecord]) -> Optional[int]:
    pending = [c for c in same_court if c.is_pending]

    if target.queue_position is not None:
        ahead = sum(
            1
            for c in pending
            if c is not target
            and c.queue_position is not None
            and c.queue_position < target.queue_position
        )
        return ahead + 1

    # No serial marker: fall back to feed order among pending cases
    for index, court in enumerate(pending):
        if court.case_number == target.case_number:
            return index + 1
    return None


def resolve_position(
    case_number: Optional[str], court: str, courts: Sequence[CourtRecord]
) -> Optional[int]:
    """1-based position of a pending case in its court's queue.

    Args:
        case_number: Case to look for
        court: Court number the queue belongs to
        courts: All records of the current snapshot

    Returns:
        The position (1 means next to be heard), or None when the case is not
        in that court or is no longer pending.
    """
    if not case_number:
        return None
    same_court = [c for c in courts if c.court_number == court]
    target = next((c for c in same_court if c.case_number == case_number), None)
    if target is None or not target.is_pending:
        return None
    return _position_in(target, same_court)


def current_case(same_court: Sequence[CourtRecord]) -> Optional[str]:
    """Case number currently being heard in a court, if any."""
    for court in same_court:
        if court.case_status is CaseStatus.IN_SESSION:
            return court.case_number
    return None


def court_queue(court: str, courts: Sequence[CourtRecord]) -> Dict[str, object]:
    """Queue view of one court: what is being heard and who is waiting."""
    same_court = [c for c in courts if c.court_number == court]
    waiting = []
    for record in same_court:
        if not record.case_number or not record.is_pending:
            continue
        waiting.append(
            {
                "caseNumber": record.case_number,
                "position": _position_in(record, same_court),
                "queuePosition": record.queue_position,
                "status": record.case_status.value,
            }
        )
    waiting.sort(key=lambda item: item["position"] or 0)
    return {
        "courtNumber": court,
        "currentCase": current_case(same_court),
        "totalCases": len(waiting),
        "queue": waiting,
    }
