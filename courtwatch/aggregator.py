"""History and rolling statistics derived from each snapshot."""

import logging
from typing import Dict, Iterable, Optional, Protocol

from .models import CaseStatistics, HistoryEntry, Snapshot

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


class StatisticsStore(Protocol):
    """Storage the aggregator writes through: plain get/put on documents."""

    def insert_history(self, entries: Iterable[HistoryEntry]) -> int:
        ...

    def get_statistics(self, case_number: str) -> Optional[CaseStatistics]:
        ...

    def put_statistics(self, stats: CaseStatistics) -> None:
        ...

    def count_active_subscriptions(self, case_number: str) -> int:
        ...

    def record_snapshot(self, snapshot: Snapshot, courthouse: Optional[str] = None) -> None:
        ...


class HistoryAggregator:
    """Appends case history and updates per-case statistics.

    Runs independently of notification tracking. Storage failures are logged
    and swallowed so they never hold up alerts.
    """

    def __init__(
        self,
        store: StatisticsStore,
        courthouse: Optional[str] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        snapshot_every: int = 0,
    ):
        self.store = store
        self.courthouse = courthouse
        self.history_limit = history_limit
        self.snapshot_every = snapshot_every
        self._cycles = 0

    def aggregate(self, snapshot: Snapshot) -> Dict[str, int]:
        """Persist everything derived from one snapshot."""
        result = {
            "history": self.save_history(snapshot),
            "statistics": self.update_statistics(snapshot),
            "snapshot": 0,
        }

        self._cycles += 1
        if self.snapshot_every and self._cycles % self.snapshot_every == 0:
            try:
                self.store.record_snapshot(snapshot, self.courthouse)
                result["snapshot"] = 1
                logger.info("Court snapshot saved successfully")
            except Exception as e:
                logger.error(f"Error taking court snapshot: {e}")
        return result

    def save_history(self, snapshot: Snapshot) -> int:
        entries = [
            HistoryEntry.from_record(court, self.courthouse)
            for court in snapshot.courts
            if court.case_number
        ]
        if not entries:
            return 0
        try:
            inserted = self.store.insert_history(entries)
        except Exception as e:
            logger.error(f"Error saving case history: {e}")
            return 0
        logger.info(f"Saved {inserted} case history entries ({len(entries)} observed)")
        return inserted

    def update_statistics(self, snapshot: Snapshot) -> int:
        updated = 0
        for court in snapshot.courts:
            if not court.case_number:
                continue
            try:
                stats = self.store.get_statistics(court.case_number)
                if stats is None:
                    stats = CaseStatistics(
                        case_number=court.case_number, courthouse=self.courthouse
                    )
                stats.record_appearance(court, self.history_limit)
                stats.watch_count = self.store.count_active_subscriptions(
                    court.case_number
                )
                self.store.put_statistics(stats)
                updated += 1
            except Exception as e:
                logger.error(f"Error updating statistics for {court.case_number}: {e}")
        return updated
