"""Category persistence helpers.

Updates:
  v0.1.0 - 2026-09-16 - Add category CRUD with prompt detachment on delete.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

from models.category_model import Category

from .base import ConnectionMixin, StoreError

if TYPE_CHECKING:
    from collections.abc import Iterable


class CategoryStoreMixin(ConnectionMixin):
    """Category rows; prompts reference them softly through ``categoryId``."""

    def fetch_categories(
        self, conn: sqlite3.Connection, *, is_user_created: bool | None = None
    ) -> list[Category]:
        query = "SELECT id, name, isUserCreated FROM Category"
        params: tuple[object, ...] = ()
        if is_user_created is not None:
            query += " WHERE isUserCreated = ?"
            params = (int(is_user_created),)
        rows = conn.execute(query + " ORDER BY name COLLATE NOCASE, id;", params).fetchall()
        return [Category.from_row(row) for row in rows]

    def has_category(self, conn: sqlite3.Connection, category_id: str) -> bool:
        row = conn.execute("SELECT 1 FROM Category WHERE id = ?;", (category_id,)).fetchone()
        return row is not None

    def insert_category(self, conn: sqlite3.Connection, category: Category) -> None:
        conn.execute(
            "INSERT INTO Category (id, name, isUserCreated) VALUES (?, ?, ?);",
            (category.id, category.name, int(category.is_user_created)),
        )

    def update_category(self, conn: sqlite3.Connection, category: Category) -> None:
        conn.execute(
            "UPDATE Category SET name = ?, isUserCreated = ? WHERE id = ?;",
            (category.name, int(category.is_user_created), category.id),
        )

    def delete_category(self, conn: sqlite3.Connection, category_id: str) -> int:
        """Delete a category after detaching its prompts; return detached prompt count."""
        cursor = conn.execute(
            "UPDATE Prompt SET categoryId = NULL WHERE categoryId = ?;", (category_id,)
        )
        conn.execute("DELETE FROM Category WHERE id = ?;", (category_id,))
        return cursor.rowcount

    def list_categories(self, *, is_user_created: bool | None = None) -> list[Category]:
        """Return stored categories ordered by name."""
        try:
            with self.read() as conn:
                return self.fetch_categories(conn, is_user_created=is_user_created)
        except sqlite3.Error as exc:
            raise StoreError("Failed to list categories") from exc

    def add_categories(self, categories: Iterable[Category]) -> tuple[int, int]:
        """Insert categories whose ids are not stored yet.

        Returns ``(added, skipped)``.
        """
        added = 0
        skipped = 0
        try:
            with self.transaction() as conn:
                for category in categories:
                    if self.has_category(conn, category.id):
                        skipped += 1
                        continue
                    self.insert_category(conn, category)
                    added += 1
        except sqlite3.Error as exc:
            raise StoreError("Failed to add categories") from exc
        return added, skipped


__all__ = ["CategoryStoreMixin"]
