"""
User State Repository
=====================

Per-user read state, bookmarks and preferences.

Read state is lazy: an entry without a user_entry_reads row is unread. Rows
with is_read = 0 are explicit unread markers, seeded for a new subscriber's
initial window.
"""

import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import Entry, UnreadCount, format_timestamp
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode

UNREAD_CONDITION = "(r.id IS NULL OR r.is_read = 0)"


class UserStateRepository:
    """Repository for read state, saved items and preferences."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("user_state_repository")

    # Read state

    def seed_unread(self, user_id: int, entry_ids: Iterable[int]) -> int:
        """Create explicit unread rows; existing read state is left alone.

        Returns:
            Number of rows created
        """
        created = 0
        try:
            with self.db.transaction() as conn:
                for entry_id in entry_ids:
                    cursor = conn.execute(
                        """
                        INSERT INTO user_entry_reads (user_id, entry_id, is_read, read_at)
                        VALUES (?, ?, 0, NULL)
                        ON CONFLICT(user_id, entry_id) DO NOTHING
                    """,
                        (user_id, entry_id),
                    )
                    created += cursor.rowcount
        except sqlite3.Error as e:
            self.logger.error(f"Failed to seed unread state for user {user_id}: {e}")
            raise DatabaseError(f"Failed to seed unread state: {e}", error_code=ErrorCode.DATABASE_ERROR)
        return created

    def mark_read(self, user_id: int, entry_id: int) -> None:
        now = format_timestamp(datetime.now(timezone.utc))
        self.db.execute_update(
            """
            INSERT INTO user_entry_reads (user_id, entry_id, is_read, read_at)
            VALUES (?, ?, 1, ?)
            ON CONFLICT(user_id, entry_id) DO UPDATE SET is_read = 1, read_at = excluded.read_at
        """,
            (user_id, entry_id, now),
        )

    def mark_unread(self, user_id: int, entry_id: int) -> bool:
        """Clear the read flag. No-op when the entry has no read-state row."""
        updated = self.db.execute_update(
            "UPDATE user_entry_reads SET is_read = 0, read_at = NULL WHERE user_id = ? AND entry_id = ?",
            (user_id, entry_id),
        )
        return updated > 0

    def _mark_entries_read(self, user_id: int, entry_filter: str, params: tuple) -> int:
        now = format_timestamp(datetime.now(timezone.utc))
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    f"""
                    INSERT INTO user_entry_reads (user_id, entry_id, is_read, read_at)
                    SELECT ?, e.id, 1, ? FROM entries e WHERE {entry_filter}
                    ON CONFLICT(user_id, entry_id) DO UPDATE SET is_read = 1, read_at = excluded.read_at
                """,
                    (user_id, now) + params,
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            self.logger.error(f"Failed to mark entries read for user {user_id}: {e}")
            raise DatabaseError(f"Failed to mark entries read: {e}", error_code=ErrorCode.DATABASE_ERROR)

    def mark_feed_read(self, user_id: int, feed_id: int) -> int:
        return self._mark_entries_read(user_id, "e.feed_id = ?", (feed_id,))

    def mark_all_read(self, user_id: int) -> int:
        return self._mark_entries_read(
            user_id,
            "e.feed_id IN (SELECT feed_id FROM user_feeds WHERE user_id = ?)",
            (user_id,),
        )

    def is_read(self, user_id: int, entry_id: int) -> bool:
        row = self.db.execute_one(
            "SELECT is_read FROM user_entry_reads WHERE user_id = ? AND entry_id = ?",
            (user_id, entry_id),
        )
        return bool(row and row["is_read"])

    def count_unread(self, user_id: int) -> int:
        """Unread entries across the user's active subscriptions."""
        row = self.db.execute_one(
            f"""
            SELECT COUNT(*) FROM entries e
            JOIN user_feeds uf ON uf.feed_id = e.feed_id AND uf.user_id = ? AND uf.is_active = 1
            LEFT JOIN user_entry_reads r ON r.entry_id = e.id AND r.user_id = ?
            WHERE {UNREAD_CONDITION}
        """,
            (user_id, user_id),
        )
        return row[0] if row else 0

    def count_unread_by_feed(self, user_id: int) -> List[UnreadCount]:
        rows = self.db.execute_query(
            f"""
            SELECT f.id AS feed_id, f.title AS feed_title, COUNT(*) AS unread
            FROM entries e
            JOIN feeds f ON f.id = e.feed_id
            JOIN user_feeds uf ON uf.feed_id = f.id AND uf.user_id = ? AND uf.is_active = 1
            LEFT JOIN user_entry_reads r ON r.entry_id = e.id AND r.user_id = ?
            WHERE {UNREAD_CONDITION}
            GROUP BY f.id, f.title
            ORDER BY f.title
        """,
            (user_id, user_id),
        )
        return [UnreadCount(row["feed_id"], row["feed_title"], row["unread"]) for row in rows]

    # Saved items

    def save_item(self, user_id: int, entry_id: int) -> bool:
        """Bookmark an entry. Returns False when already saved."""
        now = format_timestamp(datetime.now(timezone.utc))
        created = self.db.execute_update(
            """
            INSERT INTO saved_items (user_id, entry_id, created_at) VALUES (?, ?, ?)
            ON CONFLICT(user_id, entry_id) DO NOTHING
        """,
            (user_id, entry_id, now),
        )
        return created > 0

    def unsave_item(self, user_id: int, entry_id: int) -> bool:
        deleted = self.db.execute_update(
            "DELETE FROM saved_items WHERE user_id = ? AND entry_id = ?",
            (user_id, entry_id),
        )
        return deleted > 0

    def is_saved(self, user_id: int, entry_id: int) -> bool:
        row = self.db.execute_one(
            "SELECT 1 FROM saved_items WHERE user_id = ? AND entry_id = ?",
            (user_id, entry_id),
        )
        return row is not None

    def list_saved(self, user_id: int) -> List[Entry]:
        rows = self.db.execute_query(
            """
            SELECT e.* FROM entries e
            JOIN saved_items s ON s.entry_id = e.id
            WHERE s.user_id = ?
            ORDER BY s.created_at DESC
        """,
            (user_id,),
        )
        return [Entry.from_db_row(row) for row in rows]

    # Preferences

    def get_preference(self, user_id: int, key: str, default: Optional[str] = None) -> Optional[str]:
        row = self.db.execute_one(
            "SELECT value FROM user_preferences WHERE user_id = ? AND key = ?",
            (user_id, key),
        )
        return row["value"] if row else default

    def set_preference(self, user_id: int, key: str, value: str) -> None:
        self.db.execute_update(
            """
            INSERT INTO user_preferences (user_id, key, value) VALUES (?, ?, ?)
            ON CONFLICT(user_id, key) DO UPDATE SET value = excluded.value
        """,
            (user_id, key, value),
        )
