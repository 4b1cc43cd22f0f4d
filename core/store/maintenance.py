"""Schema bootstrap, version bookkeeping, and maintenance helpers for the store.

The tables created here form the 1.0.0 base schema. Later schema versions are
reached exclusively through the registered upgrade steps in
:mod:`core.upgrade_steps`, so this module never alters existing tables.

Updates:
  v0.3.0 - 2026-10-02 - Add library statistics and data reset helpers.
  v0.2.0 - 2026-09-20 - Track the schema version in the DatabaseInfo singleton.
  v0.1.0 - 2026-09-14 - Extract schema management from the store facade.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime

from .base import ConnectionMixin, LibraryStats, StoreError, logger, table_exists

_BASE_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS DatabaseInfo (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version TEXT NOT NULL,
        updatedAt TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS Category (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        isUserCreated INTEGER NOT NULL DEFAULT 0
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS Prompt (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        categoryId TEXT,
        promptText TEXT NOT NULL,
        isUserCreated INTEGER NOT NULL,
        usageCount INTEGER NOT NULL DEFAULT 0,
        createdAt TEXT NOT NULL,
        lastUsed TEXT,
        lastEdited TEXT
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_prompt_category ON Prompt(categoryId);",
    "CREATE INDEX IF NOT EXISTS idx_prompt_user_created ON Prompt(isUserCreated);",
    """
    CREATE TABLE IF NOT EXISTS Tag (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL
    );
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS Tag_name_key ON Tag(name);",
    """
    CREATE TABLE IF NOT EXISTS PromptTag (
        promptId TEXT NOT NULL REFERENCES Prompt(id) ON DELETE CASCADE ON UPDATE CASCADE,
        tagId TEXT NOT NULL REFERENCES Tag(id) ON DELETE CASCADE ON UPDATE CASCADE,
        PRIMARY KEY (promptId, tagId)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS Favorite (
        id TEXT PRIMARY KEY,
        promptId TEXT NOT NULL REFERENCES Prompt(id) ON DELETE CASCADE ON UPDATE CASCADE
    );
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS Favorite_promptId_key ON Favorite(promptId);",
    """
    CREATE TABLE IF NOT EXISTS RecentlyUsed (
        id TEXT PRIMARY KEY,
        promptId TEXT NOT NULL REFERENCES Prompt(id) ON DELETE CASCADE ON UPDATE CASCADE,
        usedAt TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS RecentlyUsed_usedAt_idx ON RecentlyUsed(usedAt);",
    """
    CREATE TABLE IF NOT EXISTS Response (
        id TEXT PRIMARY KEY,
        promptId TEXT NOT NULL REFERENCES Prompt(id) ON DELETE CASCADE ON UPDATE CASCADE,
        responseText TEXT NOT NULL,
        modelUsed TEXT,
        promptTokens INTEGER,
        completionTokens INTEGER,
        totalTokens INTEGER,
        createdAt TEXT NOT NULL,
        lastEdited TEXT,
        variablesUsed TEXT
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_response_prompt ON Response(promptId);",
    """
    CREATE TABLE IF NOT EXISTS Setting (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    """,
)

# Deletion order for clear_library_data; children before parents.
_CLEARABLE_TABLES = (
    "Response",
    "UserRecentlyUsed",
    "UserFavorite",
    "RecentlyUsed",
    "Favorite",
    "PromptTag",
    "Tag",
    "Prompt",
    "Category",
    "Setting",
    "UserSetting",
)


class StoreMaintenanceMixin(ConnectionMixin):
    """Tasks that create, version, inspect, and reset store storage."""

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        """Create the base schema tables if they do not exist."""
        for statement in _BASE_SCHEMA:
            conn.execute(statement)

    # Version bookkeeping ----------------------------------------------- #

    def read_version(self, conn: sqlite3.Connection) -> str | None:
        """Return the recorded schema version, or ``None`` on a fresh store."""
        row = conn.execute("SELECT version FROM DatabaseInfo WHERE id = 1;").fetchone()
        return str(row["version"]) if row is not None else None

    def write_version(self, conn: sqlite3.Connection, version: str) -> None:
        """Upsert the DatabaseInfo singleton with ``version``."""
        conn.execute(
            """
            INSERT INTO DatabaseInfo (id, version, updatedAt) VALUES (1, ?, ?)
            ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                updatedAt = excluded.updatedAt;
            """,
            (version, datetime.now(UTC).isoformat()),
        )

    def get_database_version(self) -> str | None:
        """Return the recorded schema version using a short-lived read connection."""
        try:
            with self.read() as conn:
                return self.read_version(conn)
        except sqlite3.Error as exc:
            raise StoreError("Failed to read database version") from exc

    def get_database_info(self) -> dict[str, str] | None:
        """Return the DatabaseInfo row as ``{version, updatedAt}``."""
        try:
            with self.read() as conn:
                row = conn.execute(
                    "SELECT version, updatedAt FROM DatabaseInfo WHERE id = 1;"
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError("Failed to read database info") from exc
        if row is None:
            return None
        return {"version": row["version"], "updatedAt": row["updatedAt"]}

    # Maintenance -------------------------------------------------------- #

    def get_db_stats(self) -> LibraryStats:
        """Return row counts across the library tables."""

        def _count(conn: sqlite3.Connection, query: str) -> int:
            return int(conn.execute(query).fetchone()[0])

        try:
            with self.read() as conn:
                stats = LibraryStats(
                    version=self.read_version(conn),
                    prompts=_count(conn, "SELECT COUNT(*) FROM Prompt;"),
                    user_prompts=_count(
                        conn, "SELECT COUNT(*) FROM Prompt WHERE isUserCreated = 1;"
                    ),
                    core_prompts=_count(
                        conn, "SELECT COUNT(*) FROM Prompt WHERE isUserCreated = 0;"
                    ),
                    categories=_count(conn, "SELECT COUNT(*) FROM Category;"),
                    tags=_count(conn, "SELECT COUNT(*) FROM Tag;"),
                    responses=_count(conn, "SELECT COUNT(*) FROM Response;"),
                    favorites=_count(conn, "SELECT COUNT(*) FROM Favorite;"),
                    recently_used=_count(conn, "SELECT COUNT(*) FROM RecentlyUsed;"),
                    settings=_count(conn, "SELECT COUNT(*) FROM Setting;"),
                    db_size_bytes=self._db_path.stat().st_size if self._db_path.exists() else 0,
                )
        except sqlite3.Error as exc:
            raise StoreError("Failed to compute library statistics") from exc
        return stats

    def clear_library_data(self) -> dict[str, int]:
        """Delete prompts, categories, responses, and settings; keep users and sessions.

        Returns the number of deleted rows per table.
        """
        deleted: dict[str, int] = {}
        try:
            with self.transaction() as conn:
                for table in _CLEARABLE_TABLES:
                    if not table_exists(conn, table):
                        continue
                    cursor = conn.execute(f"DELETE FROM {table};")
                    deleted[table] = cursor.rowcount
        except sqlite3.Error as exc:
            raise StoreError("Failed to clear library data") from exc
        logger.info("Cleared library data: %s", deleted)
        return deleted

    def checkpoint(self) -> None:
        """Fold the WAL file into the main database file."""
        try:
            with self.read() as conn:
                conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")
        except sqlite3.Error as exc:
            raise StoreError("Failed to checkpoint the write-ahead log") from exc


__all__ = ["StoreMaintenanceMixin"]
