"""
FeedTrak Feed Scheduler
=======================

Recurring and on-demand dispatch of background work:

- every active feed is refreshed on a fixed interval (default 30 minutes)
- entries without thumbnails are backfilled in bounded batches (hourly)
- a user's stale feeds are refreshed when their dashboard loads
- a user's "refresh all" skips feeds fetched in the last few minutes

The scheduler only enqueues jobs; workers do the fetching.
"""

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from ..config.settings import FeedTrakSettings, get_settings
from ..database.connection import DatabaseConnection
from ..jobs.queue import FEEDS_QUEUE, JobQueue, enqueue_fetch, enqueue_thumbnail_fetch
from ..storage import EntryRepository, FeedRepository
from ..utils.exceptions import ErrorCode, FeedTrakError
from ..utils.logging import get_logger_for_component


class FeedScheduler:
    """Enqueues feed refreshes and thumbnail backfills."""

    def __init__(
        self,
        queue: JobQueue,
        db_connection: DatabaseConnection,
        settings: Optional[FeedTrakSettings] = None,
    ):
        self.queue = queue
        self.settings = settings or get_settings()
        self.feeds = FeedRepository(db_connection)
        self.entries = EntryRepository(db_connection)
        self.logger = get_logger_for_component("scheduler")

    def refresh_active_feeds(self) -> int:
        """Queue a fetch for every feed with at least one active subscriber."""
        feeds = self.feeds.get_feeds_with_active_subscriptions()
        if not feeds:
            self.logger.info("No active feeds to refresh")
            return 0

        for feed in feeds:
            enqueue_fetch(self.queue, feed.feed_url)

        self.logger.info(f"Dispatched refresh jobs for {len(feeds)} feeds")
        return len(feeds)

    def refresh_feed(self, feed_id: int) -> str:
        """Queue a fetch for one feed.

        Returns:
            The feed title

        Raises:
            FeedTrakError: no feed with that ID
        """
        feed = self.feeds.get_by_id(feed_id)
        if feed is None:
            raise FeedTrakError(
                f"Feed #{feed_id} not found.",
                error_code=ErrorCode.RESOURCE_NOT_FOUND,
            )

        enqueue_fetch(self.queue, feed.feed_url)
        self.logger.info(f"Dispatched refresh for: {feed.title}")
        return feed.title

    def backfill_thumbnails(self, limit: Optional[int] = None) -> int:
        """Queue thumbnail jobs for entries that have a link but no image."""
        limit = limit or self.settings.scheduler.thumbnail_batch_size
        entries = self.entries.get_missing_thumbnails(limit)

        for entry in entries:
            enqueue_thumbnail_fetch(self.queue, entry.id)

        self.logger.info(f"Dispatched {len(entries)} thumbnail fetch jobs")
        return len(entries)

    def refresh_stale_feeds(self, user_id: int, now: Optional[datetime] = None) -> int:
        """Queue fetches for the user's feeds that are never or long ago fetched."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=self.settings.scheduler.stale_after_minutes)

        stale = self.feeds.get_stale_feeds_for_user(user_id, cutoff)
        for feed in stale:
            enqueue_fetch(self.queue, feed.feed_url, queue_name=FEEDS_QUEUE)

        if stale:
            self.logger.info(f"Auto-refreshing {len(stale)} stale feeds for user {user_id}")
        return len(stale)

    def refresh_all_for_user(self, user_id: int, now: Optional[datetime] = None) -> Tuple[int, int]:
        """Queue fetches for all of the user's feeds except recently fetched ones.

        Returns:
            (queued, skipped)
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=self.settings.scheduler.manual_refresh_min_age_minutes)

        feeds = self.feeds.get_feeds_for_user(user_id, active_only=True)
        queued = 0
        for feed in feeds:
            if feed.last_fetched_at is not None and feed.last_fetched_at >= cutoff:
                continue
            enqueue_fetch(self.queue, feed.feed_url, queue_name=FEEDS_QUEUE)
            queued += 1

        skipped = len(feeds) - queued
        self.logger.info(f"User {user_id} refresh: {queued} queued, {skipped} skipped")
        return queued, skipped

    def run_forever(self, stop_event: threading.Event, poll_interval: float = 1.0, clock=time.monotonic) -> None:
        """Tick both recurring schedules until ``stop_event`` is set.

        Both schedules fire once at startup. A tick runs to completion before
        the next one starts, so runs never overlap.
        """
        intervals: Dict[str, float] = {
            "refresh": self.settings.scheduler.refresh_interval_minutes * 60,
            "thumbnails": self.settings.scheduler.thumbnail_interval_minutes * 60,
        }
        tasks = {
            "refresh": self.refresh_active_feeds,
            "thumbnails": self.backfill_thumbnails,
        }
        next_run = {name: clock() for name in tasks}

        self.logger.info(
            f"Scheduler started: refresh every {intervals['refresh']:.0f}s, "
            f"thumbnails every {intervals['thumbnails']:.0f}s"
        )

        while not stop_event.is_set():
            for name, task in tasks.items():
                if clock() < next_run[name]:
                    continue
                try:
                    task()
                except Exception as e:
                    self.logger.error(f"Scheduled {name} run failed: {e}", exc_info=True)
                next_run[name] = clock() + intervals[name]

            stop_event.wait(poll_interval)

        self.logger.info("Scheduler stopped")
