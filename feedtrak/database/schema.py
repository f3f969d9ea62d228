"""
FeedTrak Database Schema
========================

SQLite database schema with foreign key constraints and indexes.

Core tables:
- feeds: shared feed sources, unique by feed_url
- entries: feed items, unique by (feed_id, guid)
- categories: user-owned feed labels
- user_feeds: user subscriptions to feeds
- user_entry_reads: per-user read state
- saved_items: per-user bookmarks
- user_preferences: per-user key/value settings

Users live outside this database; user_id columns hold opaque integers.
Timestamps are stored as fixed-width UTC ISO-8601 text so that string
comparison matches chronological order.
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {
    "feeds",
    "entries",
    "categories",
    "user_feeds",
    "user_entry_reads",
    "saved_items",
    "user_preferences",
}


class DatabaseSchema:
    """Database schema manager for the FeedTrak SQLite database."""

    def __init__(self, db_path: str = "data/feedtrak.db"):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")

            # Dependency order
            self._create_feeds_table(conn)
            self._create_entries_table(conn)
            self._create_categories_table(conn)
            self._create_user_feeds_table(conn)
            self._create_user_entry_reads_table(conn)
            self._create_saved_items_table(conn)
            self._create_user_preferences_table(conn)

            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_feeds_table(self, conn: sqlite3.Connection) -> None:
        """Create feeds table shared by all subscribers."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS feeds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                description TEXT,
                url TEXT,
                feed_url TEXT UNIQUE NOT NULL,
                type TEXT NOT NULL DEFAULT 'rss' CHECK (type IN ('rss', 'atom')),
                icon_url TEXT,
                last_fetched_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """
        )

    def _create_entries_table(self, conn: sqlite3.Connection) -> None:
        """Create entries table, deduplicated per feed by guid."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                feed_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                content TEXT,
                excerpt TEXT,
                url TEXT,
                thumbnail_url TEXT,
                author TEXT,
                published_at TEXT NOT NULL,
                guid TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE CASCADE,
                UNIQUE(feed_id, guid)
            )
        """
        )

    def _create_categories_table(self, conn: sqlite3.Connection) -> None:
        """Create categories table for user-owned labels."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                color TEXT,
                sort_order INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """
        )

    def _create_user_feeds_table(self, conn: sqlite3.Connection) -> None:
        """Create subscriptions table linking users to feeds."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_feeds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                feed_id INTEGER NOT NULL,
                category_id INTEGER,
                is_active BOOLEAN NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE CASCADE,
                FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE SET NULL,
                UNIQUE(user_id, feed_id)
            )
        """
        )

    def _create_user_entry_reads_table(self, conn: sqlite3.Connection) -> None:
        """Create read-state table. A missing row means unread."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_entry_reads (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                entry_id INTEGER NOT NULL,
                is_read BOOLEAN NOT NULL DEFAULT 0,
                read_at TEXT,
                FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE,
                UNIQUE(user_id, entry_id)
            )
        """
        )

    def _create_saved_items_table(self, conn: sqlite3.Connection) -> None:
        """Create bookmarks table."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS saved_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                entry_id INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE,
                UNIQUE(user_id, entry_id)
            )
        """
        )

    def _create_user_preferences_table(self, conn: sqlite3.Connection) -> None:
        """Create key/value preferences table."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_preferences (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                key TEXT NOT NULL,
                value TEXT,
                UNIQUE(user_id, key)
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        """Create indexes for the hot query paths."""
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_feeds_last_fetched ON feeds(last_fetched_at)",
            "CREATE INDEX IF NOT EXISTS idx_entries_feed_published ON entries(feed_id, published_at)",
            "CREATE INDEX IF NOT EXISTS idx_entries_thumbnail ON entries(thumbnail_url)",
            "CREATE INDEX IF NOT EXISTS idx_categories_user ON categories(user_id, sort_order)",
            "CREATE INDEX IF NOT EXISTS idx_user_feeds_user_active ON user_feeds(user_id, is_active)",
            "CREATE INDEX IF NOT EXISTS idx_user_feeds_feed ON user_feeds(feed_id)",
            "CREATE INDEX IF NOT EXISTS idx_user_entry_reads_user ON user_entry_reads(user_id, is_read)",
            "CREATE INDEX IF NOT EXISTS idx_saved_items_user ON saved_items(user_id)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with sqlite3.connect(self.db_path) as conn:
            for table in (
                "user_preferences",
                "saved_items",
                "user_entry_reads",
                "user_feeds",
                "categories",
                "entries",
                "feeds",
            ):
                conn.execute(f"DROP TABLE IF EXISTS {table}")

            conn.commit()
            logger.info("All database tables dropped")

    def verify_schema(self) -> bool:
        """Verify every expected table exists."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}

                missing = EXPECTED_TABLES - tables
                if missing:
                    logger.error(f"Missing tables: {sorted(missing)}")
                    return False

                conn.execute("PRAGMA foreign_key_check")
                logger.info("Database schema verification passed")
                return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False


def create_tables(db_path: str = "data/feedtrak.db") -> None:
    """Convenience function to create database tables."""
    DatabaseSchema(db_path).create_tables()
