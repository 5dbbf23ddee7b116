"""Main entry point for CourtWatch."""

import json
import logging
import signal
import sys
import threading
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import settings
from .database import DatabaseManager
from .models import NotificationFlags, Snapshot
from .service import build_service

console = Console()


# Configure logging
def setup_logging(level: str) -> None:
    """Set up logging with Rich handler or JSON lines."""
    log_level = getattr(logging, level.upper())
    if settings.log_json:

        class JsonFormatter(logging.Formatter):
            def format(self, record: logging.LogRecord) -> str:
                payload = {
                    "level": record.levelname,
                    "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
                    "message": record.getMessage(),
                    "name": record.name,
                }
                return json.dumps(payload)

        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=log_level, handlers=[handler], force=True)
    else:
        logging.basicConfig(
            level=log_level,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=console, rich_tracebacks=True)],
            force=True,
        )


logger = logging.getLogger(__name__)


def render_snapshot(snapshot: Snapshot) -> Table:
    """Rich table of the board, one row per court."""
    table = Table(title=f"Court board at {snapshot.scraped_at:%Y-%m-%d %H:%M:%S}")
    table.add_column("Court", justify="right")
    table.add_column("Judge")
    table.add_column("Bench")
    table.add_column("Status")
    table.add_column("Case")
    table.add_column("Sr.", justify="right")
    table.add_column("Live")

    for court in snapshot.courts:
        table.add_row(
            court.court_number or court.court_id,
            court.judge_name,
            court.bench_type.value,
            court.case_status.value,
            court.case_number or "-",
            str(court.queue_position) if court.queue_position is not None else "-",
            "●" if court.is_live else "",
        )
    return table


def _apply_overrides(dry_run: bool, log_level: Optional[str]) -> None:
    # Override config with CLI options
    if dry_run:
        settings.dry_run = True
    if log_level:
        settings.log_level = log_level
    setup_logging(settings.log_level)


@click.group()
def cli() -> None:
    """CourtWatch - court queue tracking and case alerts."""


@cli.command()
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Track cases but log alerts instead of sending them",
)
@click.option("--serve/--no-serve", default=False, help="Also serve the status API")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Set logging level",
)
def run(dry_run: bool, serve: bool, log_level: Optional[str]) -> None:
    """Poll the board continuously and send alerts."""
    _apply_overrides(dry_run, log_level)
    logger.info("🔍 Starting CourtWatch realtime tracker...")

    try:
        service = build_service(settings)
    except ValueError as e:
        console.print(f"[red]❌ Configuration error:[/red] {e}")
        sys.exit(1)

    stopped = threading.Event()

    def _shutdown(signum: int, frame: object) -> None:  # noqa: ARG001
        stopped.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    service.start()
    try:
        if serve:
            import uvicorn

            from .api import create_api_app

            app = create_api_app(service.database, service.broadcaster, service.scheduler)
            uvicorn.run(app, host=settings.api_host, port=settings.api_port)
        else:
            stopped.wait()
    finally:
        service.stop()
        logger.info("✅ CourtWatch stopped")


@cli.command()
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Track cases but log alerts instead of sending them",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Set logging level",
)
def once(dry_run: bool, log_level: Optional[str]) -> None:
    """Run a single polling cycle and print the board."""
    _apply_overrides(dry_run, log_level)

    try:
        service = build_service(settings)
    except ValueError as e:
        console.print(f"[red]❌ Configuration error:[/red] {e}")
        sys.exit(1)

    try:
        snapshot = service.run_once()
    finally:
        service.stop()

    if snapshot is None:
        status = service.scheduler.status()
        console.print(f"[red]❌ Cycle failed:[/red] {status.last_error}")
        sys.exit(1)

    console.print(render_snapshot(snapshot))
    summary = snapshot.summary()
    console.print(
        f"📊 {summary['total']} courts, {summary['in_session']} in session, "
        f"{summary['recess']} in recess, {summary['live']} live"
    )


@cli.command()
@click.argument("device_id")
@click.argument("case_identifier")
@click.option("--token", required=True, help="Push token of the device")
@click.option("--nickname", default=None, help="Friendly name for the case")
@click.option("--no-early-warning", is_flag=True, default=False)
@click.option("--no-approaching", is_flag=True, default=False)
@click.option("--no-in-session", is_flag=True, default=False)
@click.option("--no-completed", is_flag=True, default=False)
def watch(
    device_id: str,
    case_identifier: str,
    token: str,
    nickname: Optional[str],
    no_early_warning: bool,
    no_approaching: bool,
    no_in_session: bool,
    no_completed: bool,
) -> None:
    """Register DEVICE_ID and watch CASE_IDENTIFIER.

    CASE_IDENTIFIER is a case number or COURT:<court>:<position|case number>.
    """
    database = DatabaseManager(settings.database_file)
    database.ensure_schema()
    database.register_device(device_id, token)
    subscription_id = database.add_subscription(
        device_id,
        case_identifier,
        flags=NotificationFlags(
            early_warning=not no_early_warning,
            approaching=not no_approaching,
            in_session=not no_in_session,
            completed=not no_completed,
        ),
        courthouse=settings.courthouse,
        nickname=nickname,
    )
    console.print(f"✅ Watching {case_identifier} (subscription #{subscription_id})")


@cli.command()
@click.argument("subscription_id", type=int)
def unwatch(subscription_id: int) -> None:
    """Stop watching subscription SUBSCRIPTION_ID."""
    database = DatabaseManager(settings.database_file)
    database.ensure_schema()
    if not database.deactivate_subscription(subscription_id):
        console.print(f"[red]❌ No subscription #{subscription_id}[/red]")
        sys.exit(1)
    console.print(f"✅ Stopped watching subscription #{subscription_id}")


@cli.command()
@click.argument("device_id")
def status(device_id: str) -> None:
    """Show DEVICE_ID's watched cases and their alert progress."""
    database = DatabaseManager(settings.database_file)
    database.ensure_schema()
    subscriptions = database.get_subscriptions_for_device(device_id)
    if not subscriptions:
        console.print(f"No active watches for {device_id}")
        return

    table = Table(title=f"Watches for {device_id}")
    table.add_column("#", justify="right")
    table.add_column("Case")
    table.add_column("Last alert")
    table.add_column("When")
    for sub in subscriptions:
        table.add_row(
            str(sub.subscription_id),
            sub.nickname or sub.case_identifier,
            sub.last_notification_sent.value,
            (
                sub.last_notification_time.strftime("%Y-%m-%d %H:%M:%S")
                if sub.last_notification_time
                else "-"
            ),
        )
    console.print(table)


main = cli


if __name__ == "__main__":
    cli()
