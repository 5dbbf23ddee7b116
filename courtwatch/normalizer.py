"""
CourtWatch feed normalizer - streaming board rows and markup to a Snapshot

The board publishes two loosely related payloads: a JSON row list with the
serial marker and case info for each court, and an HTML page with one card per
court carrying the judge, photos, stream link and live indicator. Both are
keyed by the court code. Every row is coerced into a RawRow once, here;
nothing downstream sees untyped data.

Field extraction that has more than one possible source is written as an
ordered chain of small extractors; the first non-empty result wins.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

from .errors import RowParseError
from .models import (
    BenchType,
    CaseStatus,
    CourtRecord,
    Snapshot,
    court_sort_key,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_ORIGIN = "https://gujarathighcourt.nic.in"
DEFAULT_BOARD_URL = "https://gujarathighcourt.nic.in/streamingboard/"

PLACEHOLDER = "-"
LIVE_MARKER = "[Live]"
RECESS_MARKER = "(RECESS)"

_WHITESPACE = re.compile(r"\s+")
_SITTING_OVER = re.compile(r"COURT\s*SITTING\s*OVER", re.IGNORECASE)
_COURT_NO = re.compile(r"COURT\s*NO[:\s]", re.IGNORECASE)
_COURT_NO_PREFIX = re.compile(r"COURT\s*NO:?", re.IGNORECASE)
_FIRST_INT = re.compile(r"(\d+)")
_PAGE_CLASS = re.compile(r"page_(\d+)")
_DOT_SLASH = re.compile(r"^\./")


def clean_text(text: Optional[str]) -> str:
    """Collapse runs of whitespace and trim."""
    return _WHITESPACE.sub(" ", text).strip() if text else ""


def is_valid_value(value: Optional[str]) -> bool:
    """True for text that is neither empty nor the board's ``-`` placeholder."""
    return bool(value) and value.strip() not in ("", PLACEHOLDER)


@dataclass(frozen=True)
class RawRow:
    """One entry of the board's row list, validated and coerced."""

    court_code: str
    serial: str = ""
    case_info: str = ""
    case_list: str = ""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Optional["RawRow"]:
        """Coerce a loosely-typed row; returns None when it has no court code."""
        if not isinstance(payload, dict):
            raise RowParseError(f"Row is not an object: {payload!r}")
        code = str(payload.get("courtcode") or "").strip()
        if not code:
            return None
        return cls(
            court_code=code,
            serial=clean_text(_as_text(payload.get("gsrno"))),
            case_info=clean_text(_as_text(payload.get("caseinfo"))),
            case_list=clean_text(_as_text(payload.get("causelisttype"))),
        )


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


# -----------------------------------------------------------------------------
# Extractor chains
# -----------------------------------------------------------------------------

CardExtractor = Callable[[Optional[Tag], RawRow], str]


def first_non_empty(
    extractors: Sequence[CardExtractor], card: Optional[Tag], row: RawRow
) -> str:
    for extractor in extractors:
        value = extractor(card, row)
        if is_valid_value(value):
            return value
    return ""


def _judge_text(card: Optional[Tag], selector: str) -> str:
    if card is None:
        return ""
    element = card.select_one(selector)
    if element is None:
        return ""
    return clean_text(element.get_text(" ").replace(LIVE_MARKER, ""))


def judge_from_category(card: Optional[Tag], row: RawRow) -> str:
    return _judge_text(card, ".card-category b")


def judge_from_header(card: Optional[Tag], row: RawRow) -> str:
    return _judge_text(card, ".card-header")


def judge_from_title(card: Optional[Tag], row: RawRow) -> str:
    return _judge_text(card, ".card-title")


def judge_from_body(card: Optional[Tag], row: RawRow) -> str:
    return _judge_text(card, ".card-body")


def serial_from_row(card: Optional[Tag], row: RawRow) -> str:
    return row.serial


def serial_from_card(card: Optional[Tag], row: RawRow) -> str:
    if card is None:
        return ""
    element = card.find(id=f"srno_{row.court_code}")
    return clean_text(element.get_text()) if element else ""


JUDGE_NAME_CHAIN: Tuple[CardExtractor, ...] = (
    judge_from_category,
    judge_from_header,
    judge_from_title,
    judge_from_body,
)
SERIAL_CHAIN: Tuple[CardExtractor, ...] = (serial_from_row, serial_from_card)


# -----------------------------------------------------------------------------
# Field rules
# -----------------------------------------------------------------------------


def extract_judge_name(card: Optional[Tag], row: RawRow) -> str:
    return first_non_empty(JUDGE_NAME_CHAIN, card, row)


def classify_case(case_info: str) -> Tuple[CaseStatus, Optional[str]]:
    """Map the free-text case info field to a status and case number.

    Rules are ordered: sitting over, then recess, then any real text.
    """
    text = clean_text(case_info)
    if not text:
        return CaseStatus.UNKNOWN, None
    if _SITTING_OVER.search(text):
        return CaseStatus.SITTING_OVER, None
    if RECESS_MARKER in text:
        number = clean_text(text.replace(RECESS_MARKER, ""))
        if not number:
            return CaseStatus.UNKNOWN, None
        return CaseStatus.RECESS, number
    if is_valid_value(text):
        return CaseStatus.IN_SESSION, text
    return CaseStatus.UNKNOWN, None


def parse_queue_position(serial: Optional[str]) -> Optional[int]:
    """First integer embedded in a serial marker (``"106"``, ``"Sr. 12"``)."""
    if not is_valid_value(serial):
        return None
    match = _FIRST_INT.search(serial)
    return int(match.group(1)) if match else None


def absolutize(url: str, origin: str) -> str:
    """Root-relative links are rewritten against the board's origin."""
    if url.startswith("/"):
        return f"{origin.rstrip('/')}{url}"
    return url


def extract_stream_url(card: Optional[Tag], origin: str) -> Optional[str]:
    if card is None:
        return None
    link = card.find("a")
    href = link.get("href") if link else None
    if not href or not href.strip():
        return None
    return absolutize(href.strip(), origin)


def extract_judge_photos(card: Optional[Tag], board_url: str) -> Tuple[str, ...]:
    if card is None:
        return ()
    photos: List[str] = []
    for img in card.select(".photoclass, img"):
        src = (img.get("src") or img.get("data-src") or "").strip()
        if not src:
            continue
        if not src.startswith("http"):
            src = board_url.rstrip("/") + "/" + _DOT_SLASH.sub("", src).lstrip("/")
        photos.append(src)
    return tuple(photos)


def extract_court_number(card: Optional[Tag], court_code: str) -> str:
    if card is None:
        return ""
    element = card.find(id=f"court_{court_code}")
    if element is None:
        # Innermost match, so surrounding card text is not swept in
        matches = [el for el in card.find_all(True) if _COURT_NO.search(el.get_text(" "))]
        element = min(matches, key=lambda el: len(el.get_text()), default=None)
    if element is None:
        return ""
    return clean_text(_COURT_NO_PREFIX.sub("", clean_text(element.get_text(" "))))


def extract_page_number(card: Optional[Tag]) -> int:
    if card is None:
        return 1
    classes = " ".join(card.get("class") or [])
    match = _PAGE_CLASS.search(classes)
    return int(match.group(1)) if match else 1


def is_live(card: Optional[Tag]) -> bool:
    return card is not None and card.select_one(".blink_me") is not None


# -----------------------------------------------------------------------------
# Normalization
# -----------------------------------------------------------------------------


def normalize_row(
    row: RawRow,
    card: Optional[Tag],
    scraped_at: datetime,
    origin: str = DEFAULT_ORIGIN,
    board_url: str = DEFAULT_BOARD_URL,
) -> CourtRecord:
    """Build the canonical record for one court."""
    photos = extract_judge_photos(card, board_url)
    serial = first_non_empty(SERIAL_CHAIN, card, row)
    status, case_number = classify_case(row.case_info)

    return CourtRecord(
        court_id=row.court_code,
        court_number=extract_court_number(card, row.court_code),
        judge_name=extract_judge_name(card, row),
        bench_type=BenchType.DIVISION if len(photos) >= 2 else BenchType.SINGLE,
        is_live=is_live(card),
        case_status=status,
        case_number=case_number,
        queue_position=parse_queue_position(serial),
        stream_url=extract_stream_url(card, origin),
        serial_number=serial or None,
        case_list=row.case_list or None,
        judge_photos=photos,
        page_number=extract_page_number(card),
        scraped_at=scraped_at,
    )


def normalize_feed(
    rows: Iterable[Dict[str, Any]],
    markup: str,
    scraped_at: Optional[datetime] = None,
    origin: str = DEFAULT_ORIGIN,
    board_url: str = DEFAULT_BOARD_URL,
) -> Snapshot:
    """Turn one raw board payload into an ordered Snapshot.

    Rows without a court code are dropped; a row that fails to normalize is
    logged and skipped without affecting the rest of the batch.
    """
    scraped_at = scraped_at or utcnow()
    soup = BeautifulSoup(markup or "", "html.parser")

    courts: List[CourtRecord] = []
    skipped = 0
    for payload in rows:
        try:
            row = RawRow.from_payload(payload)
            if row is None:
                continue
            card = soup.find(id=f"dv_{row.court_code}")
            courts.append(normalize_row(row, card, scraped_at, origin, board_url))
        except (RowParseError, ValueError, TypeError, AttributeError) as e:
            skipped += 1
            logger.warning(f"Skipping malformed board row {payload!r}: {e}")

    # Python's sort is stable, so courts sharing a key keep feed order
    courts.sort(key=lambda c: court_sort_key(c.court_number))

    current_date = None
    date_input = soup.find(id="currdate")
    if date_input is not None:
        current_date = date_input.get("value") or None

    snapshot = Snapshot(
        scraped_at=scraped_at, courts=tuple(courts), current_date=current_date
    )
    summary = snapshot.summary()
    logger.info(
        f"Normalized {summary['total']} courts "
        f"({summary['with_queue_position']} with queue positions, {skipped} skipped)"
    )
    return snapshot
