"""
Fetch Feed Job
==============

Background pipeline that discovers a feed, stores it and its entries, and
optionally subscribes a user to it.

Failure handling:
- Transport errors and 4xx responses fail the job permanently
- 5xx responses and unexpected exceptions propagate as retryable
- A page without a feed or an unparseable document is logged and the run
  ends without failing
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config.settings import FeedTrakSettings, get_settings
from ..database.connection import DatabaseConnection
from ..ingestion.feed_discovery import FeedDiscoveryService
from ..ingestion.models import CanonicalFeed, DiscoveryFailure, FailureReason
from ..storage import EntryRepository, FeedRepository, SubscriptionRepository, UserStateRepository
from ..utils.exceptions import HttpClientError, TransportError
from ..utils.logging import get_logger_for_component


@dataclass
class FetchOutcome:
    """What one pipeline run did."""
    feed_url: str
    feed_id: Optional[int] = None
    feed_created: bool = False
    entries_created: int = 0
    subscribed: bool = False
    unread_seeded: int = 0
    skipped_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


class FetchFeedPipeline:
    """Discover, store and subscribe for one feed URL."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        settings: Optional[FeedTrakSettings] = None,
        discovery: Optional[FeedDiscoveryService] = None,
    ):
        self.settings = settings or get_settings()
        self.discovery = discovery or FeedDiscoveryService(settings=self.settings)
        self.feeds = FeedRepository(db_connection)
        self.entries = EntryRepository(db_connection)
        self.subscriptions = SubscriptionRepository(db_connection)
        self.user_state = UserStateRepository(db_connection)
        self.logger = get_logger_for_component("fetch_feed_job")

    def handle(self, payload: Dict[str, Any]) -> FetchOutcome:
        """Job handler entry point for ``fetch_feed`` payloads."""
        return self.run(
            payload["feed_url"],
            user_id=payload.get("user_id"),
            category_id=payload.get("category_id"),
        )

    def run(self, feed_url: str, user_id: Optional[int] = None, category_id: Optional[int] = None) -> FetchOutcome:
        """Run the pipeline once.

        Raises:
            TransportError, HttpClientError: permanent fetch failures
            HttpServerError: retryable fetch failure
        """
        logger = get_logger_for_component("fetch_feed_job", feed_url=feed_url, user_id=user_id)
        ingestion = self.settings.ingestion

        is_new = not self.feeds.exists(feed_url)
        entry_limit = ingestion.new_feed_entry_limit if is_new else ingestion.existing_feed_entry_limit

        result = self.discovery.discover(feed_url, entry_limit=entry_limit)
        if isinstance(result, DiscoveryFailure):
            return self._handle_failure(result, feed_url, logger)

        return self._store(result, user_id, category_id, logger)

    def _handle_failure(self, failure: DiscoveryFailure, feed_url: str, logger) -> FetchOutcome:
        if failure.reason == FailureReason.FETCH_ERROR and failure.error is not None:
            error = failure.error
            if isinstance(error, (TransportError, HttpClientError)):
                logger.warning(f"Permanent fetch failure for {feed_url}: {error}")
            else:
                logger.warning(f"Fetch failure for {feed_url}, will retry: {error}")
            raise error

        logger.info(f"No feed stored for {feed_url}: {failure.reason.value} {failure.message}")
        return FetchOutcome(feed_url=feed_url, skipped_reason=failure.reason.value)

    def _store(self, canonical: CanonicalFeed, user_id: Optional[int], category_id: Optional[int], logger) -> FetchOutcome:
        now = datetime.now(timezone.utc)
        feed, created = self.feeds.upsert(canonical, fetched_at=now)
        outcome = FetchOutcome(feed_url=canonical.feed_url, feed_id=feed.id, feed_created=created)

        outcome.entries_created = self.entries.create_many(feed.id, canonical.entries)

        if user_id is not None:
            _, outcome.subscribed = self.subscriptions.create_if_absent(user_id, feed.id, category_id)
            window = self.entries.get_most_recent(feed.id, self.settings.ingestion.initial_unread_window)
            outcome.unread_seeded = self.user_state.seed_unread(user_id, [entry.id for entry in window])

        self.feeds.touch_last_fetched(feed.id, now)

        logger.info(
            f"Fetched {feed.feed_url}: {outcome.entries_created} new entries"
            + (f", subscribed user {user_id}" if outcome.subscribed else "")
        )
        return outcome
