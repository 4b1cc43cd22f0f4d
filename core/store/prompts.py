"""Prompt persistence and tag linking helpers.

Methods taking a ``conn`` argument run inside the caller's transaction; the
remaining methods open their own short-lived connection.

Updates:
  v0.2.0 - 2026-09-26 - Add dependent response counts for reconciliation.
  v0.1.0 - 2026-09-14 - Extract prompt CRUD and tag helpers into mixin.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections import defaultdict
from typing import TYPE_CHECKING, ClassVar

from models.prompt_model import Prompt

from .base import ConnectionMixin, StoreError, StoreNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


class PromptStoreMixin(ConnectionMixin):
    """Prompt rows plus their PromptTag links."""

    _PROMPT_COLUMNS: ClassVar[Sequence[str]] = (
        "id",
        "title",
        "description",
        "categoryId",
        "promptText",
        "isUserCreated",
        "usageCount",
        "createdAt",
        "lastUsed",
        "lastEdited",
    )
    # Columns the reconciler may overwrite on an existing row.
    _PROMPT_MUTABLE_COLUMNS: ClassVar[Sequence[str]] = (
        "title",
        "description",
        "categoryId",
        "promptText",
        "isUserCreated",
        "usageCount",
        "lastUsed",
        "lastEdited",
    )

    # Transaction-scoped primitives -------------------------------------- #

    def fetch_prompts(
        self, conn: sqlite3.Connection, *, is_user_created: bool | None = None
    ) -> list[Prompt]:
        """Return prompts (optionally filtered by origin) with their tag names."""
        query = f"SELECT {', '.join(self._PROMPT_COLUMNS)} FROM Prompt"
        params: tuple[object, ...] = ()
        if is_user_created is not None:
            query += " WHERE isUserCreated = ?"
            params = (int(is_user_created),)
        rows = conn.execute(query + " ORDER BY createdAt, id;", params).fetchall()
        tags = self.fetch_tag_names(conn, [row["id"] for row in rows])
        return [Prompt.from_row(row, tags.get(row["id"], [])) for row in rows]

    def fetch_prompt_dependents(
        self, conn: sqlite3.Connection, *, is_user_created: bool
    ) -> dict[str, int]:
        """Return ``{prompt_id: response_count}`` for prompts in the given scope."""
        rows = conn.execute(
            """
            SELECT p.id AS id, COUNT(r.id) AS dependents
            FROM Prompt AS p
            LEFT JOIN Response AS r ON r.promptId = p.id
            WHERE p.isUserCreated = ?
            GROUP BY p.id;
            """,
            (int(is_user_created),),
        ).fetchall()
        return {row["id"]: int(row["dependents"]) for row in rows}

    def has_prompt(self, conn: sqlite3.Connection, prompt_id: str) -> bool:
        row = conn.execute("SELECT 1 FROM Prompt WHERE id = ?;", (prompt_id,)).fetchone()
        return row is not None

    def insert_prompt(self, conn: sqlite3.Connection, prompt: Prompt) -> None:
        """Insert ``prompt`` with its caller-assigned id."""
        placeholders = ", ".join(f":{column}" for column in self._PROMPT_COLUMNS)
        conn.execute(
            f"INSERT INTO Prompt ({', '.join(self._PROMPT_COLUMNS)}) VALUES ({placeholders});",
            prompt.to_row(),
        )

    def update_prompt(self, conn: sqlite3.Connection, prompt: Prompt) -> None:
        """Overwrite the mutable fields of an existing prompt in place."""
        assignments = ", ".join(f"{column} = :{column}" for column in self._PROMPT_MUTABLE_COLUMNS)
        cursor = conn.execute(f"UPDATE Prompt SET {assignments} WHERE id = :id;", prompt.to_row())
        if cursor.rowcount == 0:
            raise StoreNotFoundError(f"Prompt not found: {prompt.id}")

    def delete_prompt(self, conn: sqlite3.Connection, prompt_id: str) -> None:
        """Delete a prompt; tag links, favourites, and usage rows cascade."""
        conn.execute("DELETE FROM Prompt WHERE id = ?;", (prompt_id,))

    def find_or_create_tag(self, conn: sqlite3.Connection, name: str) -> str:
        """Return the id of the tag named exactly ``name``, creating it when absent."""
        conn.execute(
            "INSERT OR IGNORE INTO Tag (id, name) VALUES (?, ?);", (str(uuid.uuid4()), name)
        )
        row = conn.execute("SELECT id FROM Tag WHERE name = ?;", (name,)).fetchone()
        return str(row["id"])

    def replace_prompt_tags(
        self, conn: sqlite3.Connection, prompt_id: str, tags: Iterable[str]
    ) -> None:
        """Drop every tag link of ``prompt_id`` and relink it to ``tags``."""
        conn.execute("DELETE FROM PromptTag WHERE promptId = ?;", (prompt_id,))
        for name in tags:
            tag_id = self.find_or_create_tag(conn, name)
            conn.execute(
                "INSERT OR IGNORE INTO PromptTag (promptId, tagId) VALUES (?, ?);",
                (prompt_id, tag_id),
            )

    def fetch_tag_names(
        self, conn: sqlite3.Connection, prompt_ids: Sequence[str]
    ) -> dict[str, list[str]]:
        """Return ``{prompt_id: [tag names]}`` for the given prompts."""
        if not prompt_ids:
            return {}
        result: dict[str, list[str]] = defaultdict(list)
        # Chunk to stay below SQLite's bound-parameter limit.
        for start in range(0, len(prompt_ids), 500):
            chunk = prompt_ids[start : start + 500]
            placeholders = ", ".join("?" for _ in chunk)
            rows = conn.execute(
                f"""
                SELECT pt.promptId AS promptId, t.name AS name
                FROM PromptTag AS pt
                JOIN Tag AS t ON t.id = pt.tagId
                WHERE pt.promptId IN ({placeholders})
                ORDER BY t.name;
                """,
                tuple(chunk),
            ).fetchall()
            for row in rows:
                result[row["promptId"]].append(row["name"])
        return dict(result)

    # Convenience API ---------------------------------------------------- #

    def list_prompts(self, *, is_user_created: bool | None = None) -> list[Prompt]:
        """Return stored prompts, optionally limited to user or core prompts."""
        try:
            with self.read() as conn:
                return self.fetch_prompts(conn, is_user_created=is_user_created)
        except sqlite3.Error as exc:
            raise StoreError("Failed to list prompts") from exc

    def get_prompt(self, prompt_id: str) -> Prompt:
        """Return a single prompt by id."""
        try:
            with self.read() as conn:
                row = conn.execute(
                    f"SELECT {', '.join(self._PROMPT_COLUMNS)} FROM Prompt WHERE id = ?;",
                    (prompt_id,),
                ).fetchone()
                tags = self.fetch_tag_names(conn, [prompt_id]) if row is not None else {}
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to load prompt {prompt_id}") from exc
        if row is None:
            raise StoreNotFoundError(f"Prompt not found: {prompt_id}")
        return Prompt.from_row(row, tags.get(prompt_id, []))

    def prompt_exists(self, prompt_id: str) -> bool:
        """Return True when a prompt with ``prompt_id`` is stored."""
        try:
            with self.read() as conn:
                return self.has_prompt(conn, prompt_id)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to look up prompt {prompt_id}") from exc

    def add_prompts(self, prompts: Iterable[Prompt]) -> tuple[int, int]:
        """Insert prompts whose ids are not stored yet; never touch existing rows.

        Returns ``(added, skipped)``.
        """
        added = 0
        skipped = 0
        try:
            with self.transaction() as conn:
                for prompt in prompts:
                    if self.has_prompt(conn, prompt.id):
                        skipped += 1
                        continue
                    self.insert_prompt(conn, prompt)
                    if prompt.tags:
                        self.replace_prompt_tags(conn, prompt.id, prompt.tags)
                    added += 1
        except sqlite3.Error as exc:
            raise StoreError("Failed to add prompts") from exc
        return added, skipped


__all__ = ["PromptStoreMixin"]
