"""
CourtWatch poll scheduler - single-flight periodic driver

One ticker fires every interval; each tick tries to start a cycle
(fetch -> normalize -> aggregate -> track -> broadcast). If the previous cycle
is still running the tick is dropped, not queued, and counted as skipped.
A failed cycle is recorded on the status and the schedule carries on.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from .models import Snapshot, utcnow

logger = logging.getLogger(__name__)


class Ticker(Protocol):
    """Recurring trigger injected into the scheduler."""

    def start(self, callback: Callable[[], None]) -> None:
        ...

    def stop(self) -> None:
        ...


class ThreadTicker:
    """Fires the callback on a fresh daemon thread every ``interval`` seconds.

    Each tick gets its own thread, so a slow cycle does not delay the next
    tick; the scheduler's guard decides whether that tick runs.
    """

    def __init__(self, interval: float, fire_immediately: bool = True):
        self.interval = interval
        self.fire_immediately = fire_immediately
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self, callback: Callable[[], None]) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, args=(callback,), name="courtwatch-ticker", daemon=True
        )
        self._thread.start()

    def _loop(self, callback: Callable[[], None]) -> None:
        if self.fire_immediately:
            self._fire(callback)
        while not self._stop.wait(self.interval):
            self._fire(callback)

    @staticmethod
    def _fire(callback: Callable[[], None]) -> None:
        threading.Thread(target=callback, name="courtwatch-cycle", daemon=True).start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None


@dataclass(frozen=True)
class SchedulerStatus:
    """Read-only view of the scheduler for health reporting."""

    is_running: bool
    last_cycle_time: Optional[datetime]
    cycle_count: int
    interval_ms: int
    skipped_ticks: int = 0
    failed_cycles: int = 0
    last_duration_ms: Optional[int] = None
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "isRunning": self.is_running,
            "lastScrapeTime": (
                self.last_cycle_time.isoformat() if self.last_cycle_time else None
            ),
            "scrapeCount": self.cycle_count,
            "interval": self.interval_ms,
            "skippedTicks": self.skipped_ticks,
            "failedCycles": self.failed_cycles,
            "lastDurationMs": self.last_duration_ms,
            "lastError": self.last_error,
        }


@dataclass
class _SchedulerState:
    is_running: bool = False
    last_cycle_time: Optional[datetime] = None
    cycle_count: int = 0
    skipped_ticks: int = 0
    failed_cycles: int = 0
    last_duration_ms: Optional[int] = None
    last_error: Optional[str] = None


class PollScheduler:
    """Drives polling cycles with at most one in flight at a time.

    Args:
        fetch: Returns a fresh Snapshot (fetch and normalize); raising aborts
            the cycle
        process: Consumes the snapshot (aggregate and track)
        broadcast: Receives the snapshot once the cycle has processed it
        ticker: Recurring trigger; ``start()`` is a no-op without one
        interval_ms: Reported interval
    """

    def __init__(
        self,
        fetch: Callable[[], Snapshot],
        process: Callable[[Snapshot], None],
        broadcast: Optional[Callable[[Snapshot], None]] = None,
        ticker: Optional[Ticker] = None,
        interval_ms: int = 30000,
    ):
        self.fetch = fetch
        self.process = process
        self.broadcast = broadcast
        self.ticker = ticker
        self.interval_ms = interval_ms
        self._state = _SchedulerState()
        self._state_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._stopped = threading.Event()

    def start(self) -> None:
        logger.info(f"Starting realtime scraper with {self.interval_ms}ms interval")
        self._stopped.clear()
        if self.ticker is not None:
            self.ticker.start(self.tick)

    def stop(self, timeout: float = 60.0) -> None:
        """Stop ticking and wait for an in-flight cycle to finish.

        Ticks arriving after this call are ignored, so once it returns no
        cycle will hand further alerts downstream.
        """
        self._stopped.set()
        if self.ticker is not None:
            self.ticker.stop()
        if self._cycle_lock.acquire(timeout=timeout):
            self._cycle_lock.release()
        else:
            logger.warning(f"Scrape still running after {timeout}s, stopping anyway")
        logger.info("Realtime scraper stopped")

    def tick(self) -> bool:
        """Run one cycle unless one is already in flight.

        Returns:
            True if a cycle ran, False if the tick was skipped
        """
        if self._stopped.is_set():
            logger.debug("Scheduler stopped, ignoring tick")
            return False
        if not self._cycle_lock.acquire(blocking=False):
            with self._state_lock:
                self._state.skipped_ticks += 1
            logger.warning("Previous scrape still running, skipping...")
            return False
        try:
            self._run_cycle()
        finally:
            self._cycle_lock.release()
        return True

    def _run_cycle(self) -> None:
        with self._state_lock:
            self._state.is_running = True
            self._state.cycle_count += 1
            cycle = self._state.cycle_count
        started = time.monotonic()
        logger.info(f"Starting scrape #{cycle}")

        error: Optional[str] = None
        try:
            snapshot = self.fetch()
            self.process(snapshot)
            if self.broadcast is not None:
                self.broadcast(snapshot)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.error(f"Error in realtime scraper: {e}")

        duration_ms = int((time.monotonic() - started) * 1000)
        with self._state_lock:
            self._state.is_running = False
            self._state.last_duration_ms = duration_ms
            self._state.last_error = error
            if error is None:
                self._state.last_cycle_time = utcnow()
            else:
                self._state.failed_cycles += 1
        if error is None:
            logger.info(f"Scrape #{cycle} completed in {duration_ms}ms")

    def status(self) -> SchedulerStatus:
        with self._state_lock:
            state = self._state
            return SchedulerStatus(
                is_running=state.is_running,
                last_cycle_time=state.last_cycle_time,
                cycle_count=state.cycle_count,
                interval_ms=self.interval_ms,
                skipped_ticks=state.skipped_ticks,
                failed_cycles=state.failed_cycles,
                last_duration_ms=state.last_duration_ms,
                last_error=state.last_error,
            )
