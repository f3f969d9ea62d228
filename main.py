#!/usr/bin/env python3
"""
FeedTrak - Feed Aggregation Engine
==================================

Main application entry point with CLI interface for management and operation.

Usage:
    python main.py --help                       # Show all commands
    python main.py check-config                 # Validate configuration
    python main.py init-db                      # Initialize database
    python main.py discover URL                 # Show the feed behind a URL
    python main.py add-feed USER_ID URL         # Subscribe a user to a feed
    python main.py import-opml USER_ID FILE     # Import an OPML subscription list
    python main.py refresh-feeds                # Refresh every active feed
    python main.py fetch-thumbnails             # Backfill missing thumbnails
    python main.py run-worker                   # One full refresh and backfill pass
    python main.py run-scheduler                # Recurring refresh with workers
"""

import sys
import logging
import threading
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from feedtrak.config.settings import get_settings
from feedtrak.database.schema import DatabaseSchema
from feedtrak.database.connection import get_db_manager
from feedtrak.ingestion.feed_discovery import FeedDiscoveryService
from feedtrak.ingestion.models import DiscoveryFailure
from feedtrak.jobs import InMemoryJobQueue, WorkerPool, build_job_runner
from feedtrak.scheduler.feed_scheduler import FeedScheduler
from feedtrak.services import ReaderService
from feedtrak.utils.logging import configure_application_logging
from feedtrak.utils.exceptions import FeedTrakError, get_user_friendly_message

console = Console()
logger = logging.getLogger(__name__)


class AppContext:
    """Settings, database, queue and runner shared by one CLI invocation."""

    def __init__(self, settings):
        self.settings = settings
        self.db = get_db_manager(settings.database.path, settings.database.pool_size)
        self.queue = InMemoryJobQueue()
        self.runner = build_job_runner(self.queue, self.db, settings=settings)

    def process_jobs(self, workers=None):
        """Run queued jobs on a worker pool until nothing is left."""
        if self.queue.pending_count() == 0:
            return
        pool = WorkerPool(self.runner, worker_count=workers or self.settings.jobs.worker_count)
        pool.start()
        try:
            with console.status(f"Processing {self.queue.pending_count()} queued job(s)..."):
                pool.wait_until_idle()
        finally:
            pool.stop()
        _print_job_summary(self.runner.statistics.summary())


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, debug):
    """FeedTrak - RSS/Atom feed aggregation engine."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _load_app(ctx) -> AppContext:
    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if ctx.obj.get('debug') else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
    )
    DatabaseSchema(settings.database.path).create_tables()
    return AppContext(settings)


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking FeedTrak Configuration[/bold blue]")

    try:
        settings = get_settings()

        table = Table(title="Configuration Status")
        table.add_column("Component", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Details")

        checks = [
            ("Database", _check_database_config),
            ("Logging", _check_logging_config),
            ("Fetching", _check_fetch_config),
            ("Jobs", _check_jobs_config),
            ("Scheduler", _check_scheduler_config),
        ]

        all_passed = True
        for name, check_func in checks:
            try:
                status, details = check_func(settings)
                table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
                if not status:
                    all_passed = False
            except Exception as e:
                table.add_row(name, "❌ Error", str(e))
                all_passed = False

        console.print(table)

        if all_passed:
            console.print("[bold green]✅ All configuration checks passed![/bold green]")
            sys.exit(0)
        else:
            console.print("[bold red]❌ Configuration validation failed[/bold red]")
            sys.exit(1)

    except FeedTrakError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
def init_db():
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing FeedTrak Database[/bold blue]")

    try:
        settings = get_settings()
        Path(settings.database.path).parent.mkdir(parents=True, exist_ok=True)

        schema = DatabaseSchema(settings.database.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Database schema verification failed[/bold red]")
            sys.exit(1)

        console.print("[bold green]✅ Database initialized successfully![/bold green]")

        info = get_db_manager(settings.database.path).get_database_info()
        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")
        info_table.add_row("Database Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        info_table.add_row("Feeds", str(info['table_counts']['feeds']))
        info_table.add_row("Entries", str(info['table_counts']['entries']))
        info_table.add_row("Connection Pool", f"{info['total_connections']} connections")
        console.print(info_table)

    except FeedTrakError as e:
        console.print(f"[bold red]❌ Database initialization error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('url')
@click.option('--limit', default=5, show_default=True, help='Entries to show')
@click.pass_context
def discover(ctx, url, limit):
    """Show the feed FeedTrak finds behind URL (nothing is stored)."""
    console.print(f"[bold blue]📡 Discovering feed: {url}[/bold blue]")
    app = _load_app(ctx)

    result = FeedDiscoveryService(settings=app.settings).discover(url)
    if isinstance(result, DiscoveryFailure):
        console.print(f"[bold red]❌ {result.reason.value}: {result.message}[/bold red]")
        sys.exit(1)

    info_table = Table(title="Feed Information")
    info_table.add_column("Property", style="cyan")
    info_table.add_column("Value", style="green")
    info_table.add_row("Title", result.title)
    info_table.add_row("Type", result.type.value)
    info_table.add_row("Site URL", result.url or "-")
    info_table.add_row("Feed URL", result.feed_url)
    info_table.add_row("Entries", str(len(result.entries)))
    console.print(info_table)

    if result.entries:
        console.print(f"\n[bold blue]📰 Latest entries (showing first {min(limit, len(result.entries))}):[/bold blue]")
        for i, entry in enumerate(result.entries[:limit], 1):
            console.print(f"\n{i}. [bold]{entry.title}[/bold]")
            console.print(f"   📅 Published: {entry.published_at.isoformat()}")
            console.print(f"   🔗 Link: {entry.url or '-'}")
            if entry.thumbnail_url:
                console.print(f"   🖼️  Thumbnail: {entry.thumbnail_url}")


@cli.command()
@click.argument('user_id', type=int)
@click.argument('url')
@click.option('--category', 'category_id', type=int, help='Category ID for the subscription')
@click.option('--no-process', is_flag=True, help='Only queue the fetch job')
@click.pass_context
def add_feed(ctx, user_id, url, category_id, no_process):
    """Subscribe USER_ID to the feed behind URL."""
    app = _load_app(ctx)
    service = ReaderService(app.db, app.queue, settings=app.settings)

    try:
        message = service.add_feed(user_id, url, category_id)
    except FeedTrakError as e:
        console.print(f"[bold red]❌ {get_user_friendly_message(e)}[/bold red]")
        sys.exit(1)

    console.print(f"[green]{message}[/green]")
    if not no_process:
        app.process_jobs()


@cli.command()
@click.argument('user_id', type=int)
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--no-process', is_flag=True, help='Only queue the fetch jobs')
@click.pass_context
def import_opml(ctx, user_id, file, no_process):
    """Import an OPML subscription list for USER_ID."""
    console.print(f"[bold blue]📥 Importing {file.name} for user {user_id}[/bold blue]")
    app = _load_app(ctx)
    service = ReaderService(app.db, app.queue, settings=app.settings)

    result = service.import_opml_upload(user_id, file.name, file.read_bytes())
    if not result.ok:
        console.print(f"[bold red]❌ {result.message}[/bold red]")
        sys.exit(1)

    console.print(f"[green]{result.message}[/green]")
    if not no_process:
        app.process_jobs()


@cli.command()
@click.option('--feed', 'feed_id', type=int, help='Refresh a specific feed by ID')
@click.option('--workers', type=int, help='Worker threads')
@click.pass_context
def refresh_feeds(ctx, feed_id, workers):
    """Refresh all active feeds (or a specific feed)."""
    app = _load_app(ctx)
    scheduler = FeedScheduler(app.queue, app.db, settings=app.settings)

    if feed_id:
        try:
            title = scheduler.refresh_feed(feed_id)
        except FeedTrakError as e:
            console.print(f"[bold red]❌ {e.user_message}[/bold red]")
            sys.exit(1)
        console.print(f"Dispatched refresh for: {title}")
    else:
        count = scheduler.refresh_active_feeds()
        if not count:
            console.print("No active feeds to refresh.")
            return
        console.print(f"Dispatching refresh jobs for {count} feeds...")

    app.process_jobs(workers)


@cli.command()
@click.option('--limit', type=int, help='Maximum number of entries to process')
@click.option('--workers', type=int, help='Worker threads')
@click.pass_context
def fetch_thumbnails(ctx, limit, workers):
    """Fetch article-page thumbnails for entries that have none."""
    app = _load_app(ctx)
    scheduler = FeedScheduler(app.queue, app.db, settings=app.settings)

    count = scheduler.backfill_thumbnails(limit)
    console.print(f"Dispatched {count} thumbnail fetch jobs.")
    app.process_jobs(workers)


@cli.command()
@click.option('--workers', type=int, help='Worker threads')
@click.pass_context
def run_worker(ctx, workers):
    """Run one refresh and thumbnail pass on a worker pool, then exit."""
    app = _load_app(ctx)
    scheduler = FeedScheduler(app.queue, app.db, settings=app.settings)

    feeds = scheduler.refresh_active_feeds()
    thumbnails = scheduler.backfill_thumbnails()
    console.print(f"Queued {feeds} feed refreshes and {thumbnails} thumbnail fetches")
    app.process_jobs(workers)


@cli.command()
@click.option('--workers', type=int, help='Worker threads')
@click.pass_context
def run_scheduler(ctx, workers):
    """Run the recurring schedules and a worker pool until interrupted."""
    app = _load_app(ctx)
    scheduler = FeedScheduler(app.queue, app.db, settings=app.settings)
    pool = WorkerPool(app.runner, worker_count=workers or app.settings.jobs.worker_count)
    stop_event = threading.Event()

    console.print("[bold blue]⏰ Starting FeedTrak scheduler[/bold blue]")
    console.print(
        f"Refresh every {app.settings.scheduler.refresh_interval_minutes} min, "
        f"thumbnails every {app.settings.scheduler.thumbnail_interval_minutes} min, "
        f"{pool.worker_count} workers"
    )

    pool.start()
    try:
        scheduler.run_forever(stop_event)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping scheduler...[/yellow]")
        stop_event.set()
    finally:
        pool.stop()
        _print_job_summary(app.runner.statistics.summary())


def _print_job_summary(summary) -> None:
    if not summary:
        return

    table = Table(title="Job Results")
    table.add_column("Job", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Succeeded", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Success Rate", justify="right")

    for kind, stats in summary.items():
        table.add_row(
            kind,
            str(stats["attempts"]),
            str(stats["successes"]),
            str(stats["failures"]),
            f"{stats['success_rate']}%",
        )
    console.print(table)


def _check_database_config(settings) -> tuple[bool, str]:
    """Check database configuration."""
    try:
        if settings.database.path != ":memory:":
            Path(settings.database.path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Path: {settings.database.path}, Pool: {settings.database.pool_size}"
    except OSError as e:
        return False, str(e)


def _check_logging_config(settings) -> tuple[bool, str]:
    """Check logging configuration."""
    try:
        if settings.logging.file_path:
            Path(settings.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_fetch_config(settings) -> tuple[bool, str]:
    return True, f"Timeout: {settings.fetch.request_timeout}s, Excerpt: {settings.fetch.excerpt_length} chars"


def _check_jobs_config(settings) -> tuple[bool, str]:
    jobs = settings.jobs
    if jobs.fetch_timeout < settings.fetch.request_timeout:
        return False, "Fetch job timeout is shorter than a single request timeout"
    return True, (
        f"Workers: {jobs.worker_count}, Fetch attempts: {jobs.fetch_max_attempts}, "
        f"Backoff: {jobs.fetch_backoff}"
    )


def _check_scheduler_config(settings) -> tuple[bool, str]:
    scheduler = settings.scheduler
    return True, (
        f"Refresh: {scheduler.refresh_interval_minutes} min, "
        f"Thumbnails: {scheduler.thumbnail_interval_minutes} min (batch {scheduler.thumbnail_batch_size})"
    )


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 FeedTrak interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[bold red]❌ Unexpected error: {e}[/bold red]")
        sys.exit(1)
