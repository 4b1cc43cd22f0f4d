"""AI response history persistence.

Updates:
  v0.2.0 - 2026-09-30 - Store the optional owning user id once the 2.0.0 schema is present.
  v0.1.0 - 2026-09-18 - Add response CRUD and per-prompt counts.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, ClassVar

from models.prompt_model import PromptResponse

from .base import ConnectionMixin, StoreError, StoreNotFoundError, logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


class ResponseStoreMixin(ConnectionMixin):
    """Response rows keyed to their parent prompt."""

    _RESPONSE_COLUMNS: ClassVar[Sequence[str]] = (
        "id",
        "promptId",
        "responseText",
        "modelUsed",
        "promptTokens",
        "completionTokens",
        "totalTokens",
        "createdAt",
        "lastEdited",
        "variablesUsed",
    )
    _RESPONSE_MUTABLE_COLUMNS: ClassVar[Sequence[str]] = (
        "responseText",
        "modelUsed",
        "promptTokens",
        "completionTokens",
        "totalTokens",
        "lastEdited",
        "variablesUsed",
    )

    def fetch_responses(
        self, conn: sqlite3.Connection, *, prompt_id: str | None = None
    ) -> list[PromptResponse]:
        query = "SELECT * FROM Response"
        params: tuple[object, ...] = ()
        if prompt_id is not None:
            query += " WHERE promptId = ?"
            params = (prompt_id,)
        rows = conn.execute(query + " ORDER BY createdAt DESC, id;", params).fetchall()
        return [PromptResponse.from_row(row) for row in rows]

    def has_response(self, conn: sqlite3.Connection, response_id: str) -> bool:
        row = conn.execute("SELECT 1 FROM Response WHERE id = ?;", (response_id,)).fetchone()
        return row is not None

    def insert_response(self, conn: sqlite3.Connection, response: PromptResponse) -> None:
        """Insert ``response``; the parent prompt must already exist."""
        payload = response.to_row()
        columns = list(self._RESPONSE_COLUMNS)
        # userId only exists from schema 2.0.0 on; leave it out when unset.
        if response.user_id is not None:
            columns.append("userId")
            payload["userId"] = response.user_id
        placeholders = ", ".join(f":{column}" for column in columns)
        conn.execute(
            f"INSERT INTO Response ({', '.join(columns)}) VALUES ({placeholders});", payload
        )

    def update_response(self, conn: sqlite3.Connection, response: PromptResponse) -> None:
        assignments = ", ".join(
            f"{column} = :{column}" for column in self._RESPONSE_MUTABLE_COLUMNS
        )
        conn.execute(f"UPDATE Response SET {assignments} WHERE id = :id;", response.to_row())

    def delete_response_row(self, conn: sqlite3.Connection, response_id: str) -> bool:
        cursor = conn.execute("DELETE FROM Response WHERE id = ?;", (response_id,))
        return cursor.rowcount > 0

    # Convenience API ---------------------------------------------------- #

    def list_responses(self, prompt_id: str | None = None) -> list[PromptResponse]:
        """Return stored responses, newest first, optionally for one prompt."""
        try:
            with self.read() as conn:
                return self.fetch_responses(conn, prompt_id=prompt_id)
        except sqlite3.Error as exc:
            raise StoreError("Failed to list responses") from exc

    def get_response(self, response_id: str) -> PromptResponse:
        try:
            with self.read() as conn:
                row = conn.execute(
                    "SELECT * FROM Response WHERE id = ?;", (response_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to load response {response_id}") from exc
        if row is None:
            raise StoreNotFoundError(f"Response not found: {response_id}")
        return PromptResponse.from_row(row)

    def save_response(self, response: PromptResponse) -> PromptResponse:
        """Insert a new response or update an existing one with the same id."""
        try:
            with self.transaction() as conn:
                parent = conn.execute(
                    "SELECT 1 FROM Prompt WHERE id = ?;", (response.prompt_id,)
                ).fetchone()
                if parent is None:
                    raise StoreNotFoundError(
                        f"Cannot save response {response.id}: prompt {response.prompt_id} "
                        "does not exist"
                    )
                if self.has_response(conn, response.id):
                    self.update_response(conn, response)
                else:
                    self.insert_response(conn, response)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to save response {response.id}") from exc
        return response

    def delete_response(self, response_id: str) -> bool:
        """Delete a response; return False when it did not exist."""
        try:
            with self.transaction() as conn:
                return self.delete_response_row(conn, response_id)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to delete response {response_id}") from exc

    def count_responses_for_prompt(self, prompt_id: str) -> int:
        try:
            with self.read() as conn:
                row = conn.execute(
                    "SELECT COUNT(*) FROM Response WHERE promptId = ?;", (prompt_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to count responses for prompt {prompt_id}") from exc
        return int(row[0])

    def add_responses(self, responses: Iterable[PromptResponse]) -> tuple[int, int]:
        """Insert responses whose ids are new and whose parent prompt exists.

        Returns ``(added, skipped)``.
        """
        added = 0
        skipped = 0
        try:
            with self.transaction() as conn:
                for response in responses:
                    if self.has_response(conn, response.id):
                        skipped += 1
                        continue
                    parent = conn.execute(
                        "SELECT 1 FROM Prompt WHERE id = ?;", (response.prompt_id,)
                    ).fetchone()
                    if parent is None:
                        logger.warning(
                            "Skipping response %s: prompt %s does not exist",
                            response.id,
                            response.prompt_id,
                        )
                        skipped += 1
                        continue
                    self.insert_response(conn, response)
                    added += 1
        except sqlite3.Error as exc:
            raise StoreError("Failed to add responses") from exc
        return added, skipped


__all__ = ["ResponseStoreMixin"]
