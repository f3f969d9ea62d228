"""
Category Repository
===================

User-owned categories. Every lookup is scoped to the owning user.
"""

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import Category, format_timestamp
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class CategoryRepository:
    """Repository for managing categories in the database."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("category_repository")

    def list_for_user(self, user_id: int) -> List[Category]:
        rows = self.db.execute_query(
            "SELECT * FROM categories WHERE user_id = ? ORDER BY sort_order, name",
            (user_id,),
        )
        return [Category.from_db_row(row) for row in rows]

    def get(self, user_id: int, category_id: int) -> Optional[Category]:
        """Category by ID, or None when missing or owned by someone else."""
        row = self.db.execute_one(
            "SELECT * FROM categories WHERE id = ? AND user_id = ?",
            (category_id, user_id),
        )
        return Category.from_db_row(row) if row else None

    def get_by_name(self, user_id: int, name: str) -> Optional[Category]:
        row = self.db.execute_one(
            "SELECT * FROM categories WHERE user_id = ? AND name = ? ORDER BY id LIMIT 1",
            (user_id, name),
        )
        return Category.from_db_row(row) if row else None

    def create(self, user_id: int, name: str, color: Optional[str] = None) -> Category:
        """Create a category at the end of the user's list (sort_order = max + 1)."""
        now = format_timestamp(datetime.now(timezone.utc))
        try:
            with self.db.transaction() as conn:
                row = conn.execute(
                    "SELECT COALESCE(MAX(sort_order), 0) FROM categories WHERE user_id = ?",
                    (user_id,),
                ).fetchone()
                sort_order = row[0] + 1

                cursor = conn.execute(
                    """
                    INSERT INTO categories (user_id, name, color, sort_order, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """,
                    (user_id, name, color, sort_order, now),
                )
                category_id = cursor.lastrowid
        except sqlite3.Error as e:
            self.logger.error(f"Failed to create category {name!r} for user {user_id}: {e}")
            raise DatabaseError(f"Failed to create category: {e}", error_code=ErrorCode.DATABASE_ERROR)

        self.logger.info(f"Created category {category_id} ({name}) for user {user_id}")
        return Category(
            id=category_id,
            user_id=user_id,
            name=name,
            color=color,
            sort_order=sort_order,
        )

    def rename(self, user_id: int, category_id: int, name: str, color: Optional[str] = None) -> bool:
        if color is None:
            updated = self.db.execute_update(
                "UPDATE categories SET name = ? WHERE id = ? AND user_id = ?",
                (name, category_id, user_id),
            )
        else:
            updated = self.db.execute_update(
                "UPDATE categories SET name = ?, color = ? WHERE id = ? AND user_id = ?",
                (name, color, category_id, user_id),
            )
        return updated > 0

    def delete(self, user_id: int, category_id: int) -> bool:
        """Delete a category; its subscriptions become uncategorized."""
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    "UPDATE user_feeds SET category_id = NULL WHERE user_id = ? AND category_id = ?",
                    (user_id, category_id),
                )
                cursor = conn.execute(
                    "DELETE FROM categories WHERE id = ? AND user_id = ?",
                    (category_id, user_id),
                )
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            self.logger.error(f"Failed to delete category {category_id}: {e}")
            raise DatabaseError(f"Failed to delete category: {e}", error_code=ErrorCode.DATABASE_ERROR)

        if deleted:
            self.logger.info(f"Deleted category {category_id} for user {user_id}")
        return deleted
