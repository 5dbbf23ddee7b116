"""Wiring of the polling cycle: feed, normalizer, aggregator, tracker, broadcast."""

import logging
from datetime import timedelta
from typing import Dict, Optional

from .aggregator import HistoryAggregator
from .broadcast import LatestSnapshotBroadcaster
from .config import Settings, settings as default_settings
from .database import DatabaseManager
from .feed import FeedClient
from .models import Snapshot
from .normalizer import normalize_feed
from .notifiers import LogNotifier, NotificationDispatcher, Notifier, WebhookPushNotifier
from .scheduler import PollScheduler, ThreadTicker, Ticker
from .tracking import CaseTracker

logger = logging.getLogger(__name__)


def create_notifier(config: Optional[Settings] = None) -> Notifier:
    """Create and return the configured notifier.

    Raises:
        ValueError: If no push gateway is configured outside dry-run mode
    """
    config = config or default_settings
    config.validate_notifier_config()

    if config.dry_run:
        return LogNotifier()
    return WebhookPushNotifier(config.push_gateway_url or "", config.push_gateway_key)


class CourtWatchService:
    """Owns every collaborator of one running CourtWatch instance."""

    def __init__(
        self,
        config: Settings,
        database: DatabaseManager,
        feed: FeedClient,
        dispatcher: NotificationDispatcher,
        broadcaster: Optional[LatestSnapshotBroadcaster] = None,
        ticker: Optional[Ticker] = None,
    ):
        self.config = config
        self.database = database
        self.feed = feed
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster or LatestSnapshotBroadcaster()
        self.aggregator = HistoryAggregator(
            database,
            courthouse=config.courthouse,
            history_limit=config.status_history_limit,
            snapshot_every=config.snapshot_every_cycles,
        )
        self.tracker = CaseTracker(
            database,
            dispatcher,
            threshold=config.early_warning_threshold,
            repeat_interval=timedelta(seconds=config.in_session_repeat_seconds),
        )
        self.scheduler = PollScheduler(
            fetch=self.fetch_snapshot,
            process=self.process_snapshot,
            broadcast=self.broadcaster.publish,
            ticker=ticker,
            interval_ms=config.scraper_interval_ms,
        )

    def fetch_snapshot(self) -> Snapshot:
        raw = self.feed.fetch()
        return normalize_feed(
            raw.rows,
            raw.markup,
            origin=self.config.court_origin,
            board_url=self.config.court_base_url,
        )

    def process_snapshot(self, snapshot: Snapshot) -> Dict[str, Dict[str, int]]:
        aggregated = self.aggregator.aggregate(snapshot)
        tracked = self.tracker.process(snapshot)
        return {"aggregated": aggregated, "tracked": tracked}

    def run_once(self) -> Optional[Snapshot]:
        """Run a single cycle outside the ticker; returns the snapshot on success."""
        if not self.scheduler.tick():
            return None
        self.dispatcher.flush()
        if self.scheduler.status().last_error:
            return None
        return self.broadcaster.latest

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()
        self.dispatcher.shutdown()
        self.feed.close()


def build_service(
    config: Optional[Settings] = None,
    notifier: Optional[Notifier] = None,
    ticker: Optional[Ticker] = None,
) -> CourtWatchService:
    """Build a service from settings, creating the database schema."""
    config = config or default_settings
    database = DatabaseManager(config.database_file)
    database.ensure_schema()

    dispatcher = NotificationDispatcher(
        notifier or create_notifier(config),
        audit=database,
        max_workers=config.dispatch_workers,
    )
    return CourtWatchService(
        config=config,
        database=database,
        feed=FeedClient(config),
        dispatcher=dispatcher,
        ticker=ticker or ThreadTicker(config.interval_seconds),
    )
