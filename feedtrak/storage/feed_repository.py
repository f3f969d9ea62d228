"""
Feed Repository
===============

Repository for shared feed records. A feed is identified by its feed_url;
creation is first-wins and only last_fetched_at moves on later upserts.
"""

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..database.connection import DatabaseConnection
from ..database.models import Feed, format_timestamp
from ..ingestion.models import CanonicalFeed
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class FeedRepository:
    """Repository for managing feed data in the database."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize feed repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("feed_repository")

    def upsert(self, canonical: CanonicalFeed, fetched_at: Optional[datetime] = None) -> Tuple[Feed, bool]:
        """Create the feed if its feed_url is new, otherwise advance last_fetched_at.

        Existing title and description are never overwritten. A concurrent
        insert of the same feed_url resolves to the existing row.

        Returns:
            (feed, created)

        Raises:
            DatabaseError: If the database operation fails
        """
        now = format_timestamp(fetched_at or datetime.now(timezone.utc))

        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO feeds (
                        title, description, url, feed_url, type,
                        last_fetched_at, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(feed_url) DO NOTHING
                """,
                    (
                        canonical.title or canonical.feed_url,
                        canonical.description or None,
                        canonical.url or None,
                        canonical.feed_url,
                        canonical.type.value,
                        now,
                        now,
                        now,
                    ),
                )
                created = cursor.rowcount == 1

                if not created:
                    conn.execute(
                        "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE feed_url = ?",
                        (now, now, canonical.feed_url),
                    )

                row = conn.execute(
                    "SELECT * FROM feeds WHERE feed_url = ?", (canonical.feed_url,)
                ).fetchone()

        except sqlite3.IntegrityError:
            # Lost a race against another writer for the same feed_url
            existing = self.get_by_feed_url(canonical.feed_url)
            if existing is None:
                raise
            self.touch_last_fetched(existing.id, fetched_at)
            return existing, False
        except sqlite3.Error as e:
            self.logger.error(f"Failed to upsert feed {canonical.feed_url}: {e}")
            raise DatabaseError(
                f"Failed to upsert feed: {e}", error_code=ErrorCode.DATABASE_ERROR
            )

        feed = self._row_to_feed(row)
        if created:
            self.logger.info(f"Created feed {feed.id}: {feed.feed_url}")
        return feed, created

    def get_by_id(self, feed_id: int) -> Optional[Feed]:
        row = self.db.execute_one("SELECT * FROM feeds WHERE id = ?", (feed_id,))
        return self._row_to_feed(row) if row else None

    def get_by_feed_url(self, feed_url: str) -> Optional[Feed]:
        row = self.db.execute_one("SELECT * FROM feeds WHERE feed_url = ?", (feed_url,))
        return self._row_to_feed(row) if row else None

    def exists(self, feed_url: str) -> bool:
        row = self.db.execute_one("SELECT 1 FROM feeds WHERE feed_url = ?", (feed_url,))
        return row is not None

    def touch_last_fetched(self, feed_id: int, fetched_at: Optional[datetime] = None) -> None:
        """Set last_fetched_at, regardless of whether anything was ingested."""
        now = format_timestamp(fetched_at or datetime.now(timezone.utc))
        try:
            self.db.execute_update(
                "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE id = ?",
                (now, now, feed_id),
            )
        except sqlite3.Error as e:
            self.logger.error(f"Failed to update last_fetched_at for feed {feed_id}: {e}")
            raise DatabaseError(f"Failed to update feed: {e}")

    def get_feeds_with_active_subscriptions(self) -> List[Feed]:
        """Feeds that at least one user actively follows."""
        rows = self.db.execute_query(
            """
            SELECT * FROM feeds
            WHERE id IN (SELECT feed_id FROM user_feeds WHERE is_active = 1)
            ORDER BY id
        """
        )
        return [self._row_to_feed(row) for row in rows]

    def get_feeds_for_user(self, user_id: int, active_only: bool = False) -> List[Feed]:
        query = """
            SELECT f.* FROM feeds f
            JOIN user_feeds uf ON uf.feed_id = f.id
            WHERE uf.user_id = ?
        """
        if active_only:
            query += " AND uf.is_active = 1"
        query += " ORDER BY f.title"

        rows = self.db.execute_query(query, (user_id,))
        return [self._row_to_feed(row) for row in rows]

    def get_stale_feeds_for_user(self, user_id: int, fetched_before: datetime) -> List[Feed]:
        """The user's active feeds never fetched or last fetched before the cutoff."""
        rows = self.db.execute_query(
            """
            SELECT f.* FROM feeds f
            JOIN user_feeds uf ON uf.feed_id = f.id
            WHERE uf.user_id = ? AND uf.is_active = 1
              AND (f.last_fetched_at IS NULL OR f.last_fetched_at < ?)
            ORDER BY f.id
        """,
            (user_id, format_timestamp(fetched_before)),
        )
        return [self._row_to_feed(row) for row in rows]

    def _row_to_feed(self, row: sqlite3.Row) -> Feed:
        return Feed.from_db_row(row)
