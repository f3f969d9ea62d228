"""
Reader Service
==============

Per-user operations behind the reader interface: following feeds,
categories, read state, bookmarks, preferences and OPML uploads.

Every operation is scoped to the acting user. Feed fetching is never done
inline; operations that need fresh content enqueue a background job and
return an acknowledgement.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..config.settings import FeedTrakSettings, get_settings
from ..database.connection import DatabaseConnection
from ..database.models import Category, Entry, UnreadCount
from ..ingestion.feed_discovery import FeedDiscoveryService
from ..ingestion.opml_importer import ImportSummary, OpmlImporter
from ..jobs.queue import JobQueue, enqueue_fetch
from ..scheduler.feed_scheduler import FeedScheduler
from ..storage import (
    CategoryRepository,
    EntryRepository,
    SubscriptionRepository,
    UserStateRepository,
)
from ..utils.exceptions import (
    AccessDeniedError,
    ErrorCode,
    FeedTrakError,
    ValidationError,
)
from ..utils.logging import get_logger_for_component
from ..utils.validators import ContentValidator, URLValidator, validate_upload

FEED_PROCESSING_MESSAGE = "Feed is being processed. It will appear in your feeds shortly."
ALREADY_SUBSCRIBED_MESSAGE = "You are already subscribed to this feed"
MAX_REPORTED_IMPORT_ERRORS = 3


@dataclass
class OpmlUploadResult:
    """Outcome of an OPML upload as shown to the user."""
    ok: bool
    message: str
    summary: Optional[ImportSummary] = None


def format_import_message(summary: ImportSummary) -> str:
    """One-line report of an import."""
    message = (
        f"Import completed: {summary.feeds_imported} feeds imported, "
        f"{summary.categories_created} categories created"
    )
    if summary.feeds_skipped > 0:
        message += f", {summary.feeds_skipped} feeds skipped (already subscribed)"

    if summary.errors:
        message += ". Some errors occurred: " + "; ".join(summary.errors[:MAX_REPORTED_IMPORT_ERRORS])
        remaining = len(summary.errors) - MAX_REPORTED_IMPORT_ERRORS
        if remaining > 0:
            message += f" and {remaining} more errors"
    return message


class ReaderService:
    """User-facing operations over the shared feed store."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        queue: JobQueue,
        settings: Optional[FeedTrakSettings] = None,
        discovery: Optional[FeedDiscoveryService] = None,
    ):
        self.settings = settings or get_settings()
        self.queue = queue
        self.categories = CategoryRepository(db_connection)
        self.subscriptions = SubscriptionRepository(db_connection)
        self.entries = EntryRepository(db_connection)
        self.user_state = UserStateRepository(db_connection)
        self.scheduler = FeedScheduler(queue, db_connection, settings=self.settings)
        self.importer = OpmlImporter(db_connection, queue, settings=self.settings, discovery=discovery)
        self.logger = get_logger_for_component("reader_service")

    # Feeds

    def add_feed(self, user_id: int, url: str, category_id: Optional[int] = None) -> str:
        """Queue discovery of ``url`` and a subscription for the user.

        Raises:
            ValidationError: invalid URL or already subscribed
            AccessDeniedError: the category belongs to another user
        """
        url = URLValidator.validate_feed_url(url)
        if category_id is not None:
            self._require_category(user_id, category_id)

        if self.subscriptions.is_following_url(user_id, url):
            raise ValidationError(
                ALREADY_SUBSCRIBED_MESSAGE,
                field_name="url",
                error_code=ErrorCode.VALIDATION_DUPLICATE,
            )

        enqueue_fetch(self.queue, url, user_id=user_id, category_id=category_id)
        self.logger.info(f"Queued feed {url} for user {user_id}")
        return FEED_PROCESSING_MESSAGE

    def remove_feed(self, user_id: int, feed_id: int) -> str:
        self._require_subscription(user_id, feed_id)
        self.subscriptions.delete(user_id, feed_id)
        return "Feed removed successfully."

    def set_feed_category(self, user_id: int, feed_id: int, category_id: Optional[int]) -> str:
        self._require_subscription(user_id, feed_id)
        if category_id is not None:
            self._require_category(user_id, category_id)
        self.subscriptions.set_category(user_id, feed_id, category_id)
        return "Feed category updated successfully."

    def refresh_feed(self, user_id: int, feed_id: int) -> str:
        self._require_subscription(user_id, feed_id)
        self.scheduler.refresh_feed(feed_id)
        return "Feed refresh has been queued."

    def refresh_all(self, user_id: int) -> Tuple[int, int, str]:
        """Queue a refresh of the user's feeds that were not fetched recently.

        Returns:
            (queued, skipped, message)
        """
        queued, skipped = self.scheduler.refresh_all_for_user(user_id)
        message = f"Queued {queued} feed(s) for refresh."
        if skipped > 0:
            message += f" Skipped {skipped} recently updated feed(s)."
        return queued, skipped, message

    def on_dashboard_load(self, user_id: int) -> int:
        """Refresh stale feeds in the background; returns how many were queued."""
        return self.scheduler.refresh_stale_feeds(user_id)

    # Categories

    def list_categories(self, user_id: int) -> List[Category]:
        return self.categories.list_for_user(user_id)

    def create_category(self, user_id: int, name: str, color: Optional[str] = None) -> Category:
        name = ContentValidator.validate_category_name(name)
        return self.categories.create(user_id, name, color)

    def rename_category(self, user_id: int, category_id: int, name: str, color: Optional[str] = None) -> str:
        name = ContentValidator.validate_category_name(name)
        self._require_category(user_id, category_id)
        self.categories.rename(user_id, category_id, name, color)
        return "Category updated successfully."

    def delete_category(self, user_id: int, category_id: int) -> str:
        self._require_category(user_id, category_id)
        self.categories.delete(user_id, category_id)
        return "Category deleted successfully."

    # Read state

    def mark_read(self, user_id: int, entry_id: int) -> None:
        self._require_entry_access(user_id, entry_id)
        self.user_state.mark_read(user_id, entry_id)

    def mark_unread(self, user_id: int, entry_id: int) -> bool:
        return self.user_state.mark_unread(user_id, entry_id)

    def mark_feed_read(self, user_id: int, feed_id: int) -> str:
        self._require_subscription(user_id, feed_id)
        self.user_state.mark_feed_read(user_id, feed_id)
        return "All items marked as read."

    def mark_all_read(self, user_id: int) -> str:
        self.user_state.mark_all_read(user_id)
        return "All items marked as read."

    def count_unread(self, user_id: int) -> int:
        return self.user_state.count_unread(user_id)

    def unread_by_feed(self, user_id: int) -> List[UnreadCount]:
        return self.user_state.count_unread_by_feed(user_id)

    # Saved items

    def save_entry(self, user_id: int, entry_id: int) -> bool:
        self._require_entry_access(user_id, entry_id)
        return self.user_state.save_item(user_id, entry_id)

    def unsave_entry(self, user_id: int, entry_id: int) -> bool:
        return self.user_state.unsave_item(user_id, entry_id)

    def list_saved(self, user_id: int) -> List[Entry]:
        return self.user_state.list_saved(user_id)

    # Preferences

    def get_preference(self, user_id: int, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.user_state.get_preference(user_id, key, default)

    def set_preference(self, user_id: int, key: str, value: str) -> None:
        if not key or not key.strip():
            raise ValidationError("Preference key is required", field_name="key",
                                  error_code=ErrorCode.VALIDATION_REQUIRED_FIELD)
        self.user_state.set_preference(user_id, key.strip(), value)

    # OPML

    def import_opml_upload(self, user_id: int, filename: str, content: bytes) -> OpmlUploadResult:
        """Validate and import an uploaded OPML file.

        Upload and structural problems come back as a single error message;
        the importer's per-feed errors are folded into the success message.
        """
        opml = self.settings.opml
        try:
            validate_upload(filename, content, opml.max_upload_bytes, opml.allowed_extensions)
            summary = self.importer.import_opml(content, user_id)
        except FeedTrakError as e:
            self.logger.error(f"OPML import failed for user {user_id}: {e}")
            return OpmlUploadResult(ok=False, message=e.user_message)

        return OpmlUploadResult(ok=True, message=format_import_message(summary), summary=summary)

    # Ownership checks

    def _require_subscription(self, user_id: int, feed_id: int) -> None:
        if self.subscriptions.get(user_id, feed_id) is None:
            raise FeedTrakError(
                f"User {user_id} is not subscribed to feed {feed_id}",
                error_code=ErrorCode.RESOURCE_NOT_FOUND,
                user_message="Feed not found",
            )

    def _require_category(self, user_id: int, category_id: int) -> None:
        if self.categories.get(user_id, category_id) is None:
            raise AccessDeniedError(
                f"Category {category_id} does not belong to user {user_id}",
                user_id=user_id,
            )

    def _require_entry_access(self, user_id: int, entry_id: int) -> None:
        if not self.entries.user_can_access(user_id, entry_id):
            raise AccessDeniedError(
                f"User {user_id} cannot access entry {entry_id}",
                user_id=user_id,
            )
