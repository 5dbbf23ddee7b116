"""Live-update channel for fresh snapshots."""

import logging
import threading
from typing import Callable, List, Optional

from .models import Snapshot

logger = logging.getLogger(__name__)


class LatestSnapshotBroadcaster:
    """Keeps the most recent snapshot and fans it out to in-process listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: Optional[Snapshot] = None
        self._listeners: List[Callable[[Snapshot], None]] = []

    @property
    def latest(self) -> Optional[Snapshot]:
        with self._lock:
            return self._latest

    def subscribe(self, listener: Callable[[Snapshot], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def publish(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._latest = snapshot
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Snapshot listener failed: {e}")
        logger.debug(f"Broadcast snapshot with {len(snapshot.courts)} courts")
