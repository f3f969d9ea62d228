"""
Subscription Repository
=======================

Links between users and shared feeds, unique per (user_id, feed_id).
"""

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple

from ..database.connection import DatabaseConnection
from ..database.models import UserFeedSubscription, format_timestamp
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class SubscriptionRepository:
    """Repository for user feed subscriptions."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("subscription_repository")

    def create_if_absent(
        self,
        user_id: int,
        feed_id: int,
        category_id: Optional[int] = None,
        is_active: bool = True,
    ) -> Tuple[UserFeedSubscription, bool]:
        """Subscribe a user to a feed unless already subscribed.

        An existing subscription keeps its category and active flag.

        Returns:
            (subscription, created)
        """
        now = format_timestamp(datetime.now(timezone.utc))
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO user_feeds (user_id, feed_id, category_id, is_active, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(user_id, feed_id) DO NOTHING
                """,
                    (user_id, feed_id, category_id, int(is_active), now),
                )
                created = cursor.rowcount == 1
                row = conn.execute(
                    "SELECT * FROM user_feeds WHERE user_id = ? AND feed_id = ?",
                    (user_id, feed_id),
                ).fetchone()
        except sqlite3.IntegrityError:
            existing = self.get(user_id, feed_id)
            if existing is None:
                raise
            return existing, False
        except sqlite3.Error as e:
            self.logger.error(f"Failed to subscribe user {user_id} to feed {feed_id}: {e}")
            raise DatabaseError(f"Failed to create subscription: {e}", error_code=ErrorCode.DATABASE_ERROR)

        if created:
            self.logger.info(f"Subscribed user {user_id} to feed {feed_id}")
        return UserFeedSubscription.from_db_row(row), created

    def get(self, user_id: int, feed_id: int) -> Optional[UserFeedSubscription]:
        row = self.db.execute_one(
            "SELECT * FROM user_feeds WHERE user_id = ? AND feed_id = ?",
            (user_id, feed_id),
        )
        return UserFeedSubscription.from_db_row(row) if row else None

    def list_for_user(self, user_id: int) -> List[UserFeedSubscription]:
        rows = self.db.execute_query(
            "SELECT * FROM user_feeds WHERE user_id = ? ORDER BY id", (user_id,)
        )
        return [UserFeedSubscription.from_db_row(row) for row in rows]

    def get_subscribed_feed_urls(self, user_id: int) -> Set[str]:
        rows = self.db.execute_query(
            """
            SELECT f.feed_url FROM feeds f
            JOIN user_feeds uf ON uf.feed_id = f.id
            WHERE uf.user_id = ?
        """,
            (user_id,),
        )
        return {row["feed_url"] for row in rows}

    def is_following_url(self, user_id: int, url: str) -> bool:
        """True when the user follows a feed whose feed URL or site URL is ``url``."""
        row = self.db.execute_one(
            """
            SELECT 1 FROM feeds f
            JOIN user_feeds uf ON uf.feed_id = f.id
            WHERE uf.user_id = ? AND (f.feed_url = ? OR f.url = ?)
            LIMIT 1
        """,
            (user_id, url, url),
        )
        return row is not None

    def set_category(self, user_id: int, feed_id: int, category_id: Optional[int]) -> bool:
        updated = self.db.execute_update(
            "UPDATE user_feeds SET category_id = ? WHERE user_id = ? AND feed_id = ?",
            (category_id, user_id, feed_id),
        )
        return updated > 0

    def delete(self, user_id: int, feed_id: int) -> bool:
        deleted = self.db.execute_update(
            "DELETE FROM user_feeds WHERE user_id = ? AND feed_id = ?",
            (user_id, feed_id),
        )
        if deleted:
            self.logger.info(f"Unsubscribed user {user_id} from feed {feed_id}")
        return deleted > 0
