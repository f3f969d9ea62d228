"""
Entry Repository
================

Repository for feed entries. Entries are create-if-absent on (feed_id, guid):
re-ingesting a guid never duplicates or rewrites an entry.
"""

import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from ..database.connection import DatabaseConnection
from ..database.models import Entry, format_timestamp
from ..ingestion.models import CanonicalEntry
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode

INSERT_ENTRY_SQL = """
    INSERT INTO entries (
        feed_id, title, content, excerpt, url, thumbnail_url,
        author, published_at, guid, created_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(feed_id, guid) DO NOTHING
"""


class EntryRepository:
    """Repository for managing entries in the database."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("entry_repository")

    @staticmethod
    def _insert_params(feed_id: int, entry: CanonicalEntry, created_at: str) -> tuple:
        return (
            feed_id,
            entry.title,
            entry.content,
            entry.excerpt,
            entry.url or None,
            entry.thumbnail_url or None,
            entry.author or None,
            format_timestamp(entry.published_at),
            entry.guid,
            created_at,
        )

    def create_if_absent(self, feed_id: int, entry: CanonicalEntry) -> Tuple[Entry, bool]:
        """Insert an entry unless (feed_id, guid) already exists.

        Returns:
            (stored entry, created)
        """
        now = format_timestamp(datetime.now(timezone.utc))
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(INSERT_ENTRY_SQL, self._insert_params(feed_id, entry, now))
                created = cursor.rowcount == 1
                row = conn.execute(
                    "SELECT * FROM entries WHERE feed_id = ? AND guid = ?",
                    (feed_id, entry.guid),
                ).fetchone()
        except sqlite3.IntegrityError:
            existing = self.get_by_guid(feed_id, entry.guid)
            if existing is None:
                raise
            return existing, False
        except sqlite3.Error as e:
            self.logger.error(f"Failed to store entry {entry.guid} for feed {feed_id}: {e}")
            raise DatabaseError(f"Failed to store entry: {e}", error_code=ErrorCode.DATABASE_ERROR)

        return self._row_to_entry(row), created

    def create_many(self, feed_id: int, entries: Iterable[CanonicalEntry]) -> int:
        """Insert every new entry in one transaction.

        Returns:
            Number of entries actually created
        """
        now = format_timestamp(datetime.now(timezone.utc))
        created = 0
        try:
            with self.db.transaction() as conn:
                for entry in entries:
                    cursor = conn.execute(INSERT_ENTRY_SQL, self._insert_params(feed_id, entry, now))
                    created += cursor.rowcount
        except sqlite3.Error as e:
            self.logger.error(f"Failed to store entries for feed {feed_id}: {e}")
            raise DatabaseError(f"Failed to store entries: {e}", error_code=ErrorCode.DATABASE_ERROR)

        self.logger.debug(f"Created {created} new entries for feed {feed_id}")
        return created

    def get_by_id(self, entry_id: int) -> Optional[Entry]:
        row = self.db.execute_one("SELECT * FROM entries WHERE id = ?", (entry_id,))
        return self._row_to_entry(row) if row else None

    def get_by_guid(self, feed_id: int, guid: str) -> Optional[Entry]:
        row = self.db.execute_one(
            "SELECT * FROM entries WHERE feed_id = ? AND guid = ?", (feed_id, guid)
        )
        return self._row_to_entry(row) if row else None

    def get_most_recent(self, feed_id: int, limit: int) -> List[Entry]:
        """Newest entries of a feed by published_at."""
        rows = self.db.execute_query(
            """
            SELECT * FROM entries WHERE feed_id = ?
            ORDER BY published_at DESC, id ASC
            LIMIT ?
        """,
            (feed_id, limit),
        )
        return [self._row_to_entry(row) for row in rows]

    def count_for_feed(self, feed_id: int) -> int:
        row = self.db.execute_one("SELECT COUNT(*) FROM entries WHERE feed_id = ?", (feed_id,))
        return row[0] if row else 0

    def get_missing_thumbnails(self, limit: int = 50) -> List[Entry]:
        """Entries with a link but no thumbnail, newest first."""
        rows = self.db.execute_query(
            """
            SELECT * FROM entries
            WHERE url IS NOT NULL AND url != ''
              AND (thumbnail_url IS NULL OR thumbnail_url = '')
            ORDER BY published_at DESC
            LIMIT ?
        """,
            (limit,),
        )
        return [self._row_to_entry(row) for row in rows]

    def update_thumbnail(self, entry_id: int, thumbnail_url: str) -> bool:
        """Set the thumbnail if the entry still has none."""
        try:
            updated = self.db.execute_update(
                """
                UPDATE entries SET thumbnail_url = ?
                WHERE id = ? AND (thumbnail_url IS NULL OR thumbnail_url = '')
            """,
                (thumbnail_url, entry_id),
            )
        except sqlite3.Error as e:
            self.logger.error(f"Failed to update thumbnail for entry {entry_id}: {e}")
            raise DatabaseError(f"Failed to update thumbnail: {e}")
        return updated > 0

    def user_can_access(self, user_id: int, entry_id: int) -> bool:
        """An entry is accessible when the user subscribes to its feed."""
        row = self.db.execute_one(
            """
            SELECT 1 FROM entries e
            JOIN user_feeds uf ON uf.feed_id = e.feed_id
            WHERE e.id = ? AND uf.user_id = ?
        """,
            (entry_id, user_id),
        )
        return row is not None

    def _row_to_entry(self, row: sqlite3.Row) -> Entry:
        return Entry.from_db_row(row)
