"""Favourite and recently-used prompt relations.

Both relations exist globally (``Favorite``/``RecentlyUsed``) and per user
(``UserFavorite``/``UserRecentlyUsed``, added by the 2.0.0 schema). Passing a
``user_id`` selects the per-user table.

Updates:
  v0.2.0 - 2026-10-01 - Route per-user relations to the user tables.
  v0.1.0 - 2026-09-18 - Add global favourite and recently-used helpers.
"""

from __future__ import annotations

import sqlite3
import uuid

from models.prompt_model import RecentlyUsedEntry, ensure_datetime

from .base import ConnectionMixin, StoreError


def _scope_clause(user_id: str | None) -> tuple[str, tuple[object, ...]]:
    if user_id is None:
        return "", ()
    return " WHERE userId = ?", (user_id,)


class RelationStoreMixin(ConnectionMixin):
    """Favourite and recently-used rows pointing at prompts."""

    # Favourites --------------------------------------------------------- #

    def fetch_favorite_ids(
        self, conn: sqlite3.Connection, *, user_id: str | None = None
    ) -> list[str]:
        table = "Favorite" if user_id is None else "UserFavorite"
        where, params = _scope_clause(user_id)
        rows = conn.execute(f"SELECT promptId FROM {table}{where} ORDER BY rowid;", params)
        return [row["promptId"] for row in rows]

    def insert_favorite(
        self, conn: sqlite3.Connection, prompt_id: str, *, user_id: str | None = None
    ) -> None:
        if user_id is None:
            conn.execute(
                "INSERT INTO Favorite (id, promptId) VALUES (?, ?);",
                (str(uuid.uuid4()), prompt_id),
            )
            return
        conn.execute(
            "INSERT INTO UserFavorite (id, userId, promptId) VALUES (?, ?, ?);",
            (str(uuid.uuid4()), user_id, prompt_id),
        )

    def delete_favorite(
        self, conn: sqlite3.Connection, prompt_id: str, *, user_id: str | None = None
    ) -> None:
        if user_id is None:
            conn.execute("DELETE FROM Favorite WHERE promptId = ?;", (prompt_id,))
            return
        conn.execute(
            "DELETE FROM UserFavorite WHERE userId = ? AND promptId = ?;", (user_id, prompt_id)
        )

    def list_favorites(self, user_id: str | None = None) -> list[str]:
        """Return favourite prompt ids."""
        try:
            with self.read() as conn:
                return self.fetch_favorite_ids(conn, user_id=user_id)
        except sqlite3.Error as exc:
            raise StoreError("Failed to list favourites") from exc

    # Recently used ------------------------------------------------------ #

    def fetch_recently_used(
        self, conn: sqlite3.Connection, *, user_id: str | None = None
    ) -> list[RecentlyUsedEntry]:
        """Return recently-used entries, newest first."""
        table = "RecentlyUsed" if user_id is None else "UserRecentlyUsed"
        where, params = _scope_clause(user_id)
        rows = conn.execute(
            f"SELECT promptId, usedAt FROM {table}{where} ORDER BY usedAt DESC;", params
        )
        return [RecentlyUsedEntry(row["promptId"], ensure_datetime(row["usedAt"])) for row in rows]

    def insert_recently_used(
        self, conn: sqlite3.Connection, entry: RecentlyUsedEntry, *, user_id: str | None = None
    ) -> None:
        used_at = entry.used_at.isoformat()
        if user_id is None:
            conn.execute(
                "INSERT INTO RecentlyUsed (id, promptId, usedAt) VALUES (?, ?, ?);",
                (str(uuid.uuid4()), entry.prompt_id, used_at),
            )
            return
        conn.execute(
            "INSERT INTO UserRecentlyUsed (id, userId, promptId, usedAt) VALUES (?, ?, ?, ?);",
            (str(uuid.uuid4()), user_id, entry.prompt_id, used_at),
        )

    def update_recently_used(
        self, conn: sqlite3.Connection, entry: RecentlyUsedEntry, *, user_id: str | None = None
    ) -> None:
        used_at = entry.used_at.isoformat()
        if user_id is None:
            conn.execute(
                "UPDATE RecentlyUsed SET usedAt = ? WHERE promptId = ?;",
                (used_at, entry.prompt_id),
            )
            return
        conn.execute(
            "UPDATE UserRecentlyUsed SET usedAt = ? WHERE userId = ? AND promptId = ?;",
            (used_at, user_id, entry.prompt_id),
        )

    def delete_recently_used(
        self, conn: sqlite3.Connection, prompt_id: str, *, user_id: str | None = None
    ) -> None:
        if user_id is None:
            conn.execute("DELETE FROM RecentlyUsed WHERE promptId = ?;", (prompt_id,))
            return
        conn.execute(
            "DELETE FROM UserRecentlyUsed WHERE userId = ? AND promptId = ?;",
            (user_id, prompt_id),
        )

    def list_recently_used(self, user_id: str | None = None) -> list[str]:
        """Return recently used prompt ids, newest first."""
        try:
            with self.read() as conn:
                entries = self.fetch_recently_used(conn, user_id=user_id)
            return [entry.prompt_id for entry in entries]
        except sqlite3.Error as exc:
            raise StoreError("Failed to list recently used prompts") from exc


__all__ = ["RelationStoreMixin"]
