"""FastAPI application exposing read-only board, queue and case endpoints."""

from typing import Optional

from fastapi import FastAPI, HTTPException

from .broadcast import LatestSnapshotBroadcaster
from .database import DatabaseManager
from .queue import court_queue, find_case, group_by_court, resolve_position
from .scheduler import PollScheduler


def create_api_app(
    database: DatabaseManager,
    broadcaster: LatestSnapshotBroadcaster,
    scheduler: Optional[PollScheduler] = None,
) -> FastAPI:
    """Create the status API over a running service's collaborators."""
    app = FastAPI(title="CourtWatch API", version="0.1.0")

    def _latest():
        snapshot = broadcaster.latest
        if snapshot is None:
            raise HTTPException(status_code=503, detail="No court data yet")
        return snapshot

    @app.get("/api/courts")
    def list_courts(active_only: bool = False, live_only: bool = False) -> dict:
        """Return the latest normalized board."""
        snapshot = _latest()
        courts = list(snapshot.courts)
        if active_only:
            courts = [c for c in courts if c.is_active]
        if live_only:
            courts = [c for c in courts if c.is_live]
        data = snapshot.to_dict()
        data["courts"] = [c.to_dict() for c in courts]
        return data

    @app.get("/api/courts/search/{case_identifier:path}")
    def search_case(case_identifier: str) -> dict:
        """Locate a case on the current board and report its queue position."""
        snapshot = _latest()
        record = find_case(snapshot.courts, case_identifier)
        if record is None:
            return {"found": False, "caseNumber": case_identifier}
        return {
            "found": True,
            "caseNumber": case_identifier,
            "court": record.to_dict(),
            "position": resolve_position(
                record.case_number, record.court_number, snapshot.courts
            ),
        }

    @app.get("/api/courts/{court_number}/queue")
    def get_queue(court_number: str) -> dict:
        """Queue view for one court."""
        return court_queue(court_number, _latest().courts)

    @app.get("/api/case/history/{case_number:path}")
    def case_history(case_number: str, limit: int = 50) -> dict:
        items = database.get_case_history(case_number, limit=limit)
        return {"caseNumber": case_number, "count": len(items), "items": items}

    @app.get("/api/case/stats/{case_number:path}")
    def case_stats(case_number: str) -> dict:
        stats = database.get_statistics(case_number)
        if stats is None:
            raise HTTPException(status_code=404, detail="No statistics for case")
        return stats.to_dict()

    @app.get("/api/notifications/{device_id}")
    def notifications(device_id: str, limit: int = 50) -> dict:
        items = database.get_notifications(device_id, limit=limit)
        return {"deviceId": device_id, "items": items}

    @app.get("/api/analytics/overview")
    def analytics_overview() -> dict:
        """Storage totals plus how the current board breaks down."""
        counts = database.get_database_stats()
        overview = {
            "totalWatchlists": database.count_all_active_subscriptions(),
            "totalDevices": counts["device"],
            "totalCases": counts["case_statistics"],
            "totalNotifications": counts["notification_log"],
            "mostWatchedCases": database.get_most_watched(limit=10),
        }
        snapshot = broadcaster.latest
        if snapshot is not None:
            overview["casesByList"] = {
                name: len(courts) for name, courts in snapshot.by_case_list().items()
            }
            overview["recordsByCourt"] = {
                court: len(records)
                for court, records in group_by_court(snapshot.courts).items()
            }
        return {"overview": overview}

    @app.get("/api/scraper/status")
    def scraper_status() -> dict:
        if scheduler is None:
            return {"status": "not_running"}
        return scheduler.status().to_dict()

    @app.get("/health")
    def health() -> dict:
        """Basic health endpoint with database check."""
        db_status = database.health_check()
        return {
            "status": "ok" if db_status.get("database") == "ok" else "degraded",
            "database": db_status,
            "service": "courtwatch",
            "hasData": broadcaster.latest is not None,
        }

    return app
