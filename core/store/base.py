"""Shared record store helpers, dataclasses, and connection handling.

Updates:
  v0.2.0 - 2026-09-20 - Open connections in autocommit mode for explicit transactions.
  v0.1.0 - 2026-09-14 - Extract logger, helpers, and connection setup.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from core.exceptions import StoreError, StoreNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger = logging.getLogger("prompt_library.store")

DEFAULT_BUSY_TIMEOUT_SECONDS = 30.0


@dataclass(slots=True, frozen=True)
class LibraryStats:
    """Row counts and file metadata for maintenance views."""

    version: str | None
    prompts: int
    user_prompts: int
    core_prompts: int
    categories: int
    tags: int
    responses: int
    favorites: int
    recently_used: int
    settings: int
    db_size_bytes: int

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase mapping shown to administrators."""
        return {
            "version": self.version,
            "prompts": self.prompts,
            "userPrompts": self.user_prompts,
            "corePrompts": self.core_prompts,
            "categories": self.categories,
            "tags": self.tags,
            "responses": self.responses,
            "favorites": self.favorites,
            "recentlyUsed": self.recently_used,
            "settings": self.settings,
            "dbSizeBytes": self.db_size_bytes,
        }


def ensure_directory(path: Path) -> None:
    """Ensure the directory for the SQLite database exists."""
    path.parent.mkdir(parents=True, exist_ok=True)


def connect(db_path: Path) -> sqlite3.Connection:
    """Return a configured SQLite connection.

    The connection runs in autocommit mode; callers open transactions explicitly
    (see :meth:`core.store.RecordStore.transaction`) so that a whole reconcile
    call or upgrade hop commits or rolls back as one unit.
    """
    conn = sqlite3.connect(
        str(db_path),
        timeout=DEFAULT_BUSY_TIMEOUT_SECONDS,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    return conn


class ConnectionMixin:
    """Open short-lived connections and explicit transactions against ``_db_path``."""

    _db_path: Path

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        """Yield an autocommit connection for read-only queries."""
        conn = connect(self._db_path)
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside ``BEGIN IMMEDIATE``.

        The block commits when it exits normally and rolls back when it raises,
        so every statement issued through the connection lands together or not
        at all. ``BEGIN IMMEDIATE`` takes the SQLite writer lock up front, which
        serialises concurrent writers across processes.
        """
        conn = connect(self._db_path)
        try:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.rollback()
                raise
            conn.commit()
        finally:
            conn.close()


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    """Return True when ``table`` exists in the connected database."""
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?;", (table,)
    ).fetchone()
    return row is not None


def table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    """Return the column names of ``table`` (empty when the table is missing)."""
    return {row["name"] for row in conn.execute(f"PRAGMA table_info({table});")}


def json_dumps(value: Any | None) -> str | None:
    """Serialize arbitrary values to JSON strings (or None)."""
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def json_loads_optional(value: str | None) -> Any | None:
    """Deserialize JSON strings while tolerating plain-text fallbacks."""
    if value is None:
        return None
    if value in ("", "null"):
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


__all__ = [
    "ConnectionMixin",
    "LibraryStats",
    "StoreError",
    "StoreNotFoundError",
    "connect",
    "ensure_directory",
    "json_dumps",
    "json_loads_optional",
    "logger",
    "table_columns",
    "table_exists",
]
