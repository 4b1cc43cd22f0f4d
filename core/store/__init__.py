"""SQLite-backed record store for the prompt library.

Updates:
  v0.3.0 - 2026-10-01 - Compose relation and settings mixins.
  v0.2.0 - 2026-09-20 - Expose explicit transactions for multi-statement writes.
  v0.1.0 - 2026-09-14 - Modularize the store via prompt/category/response mixins.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from .base import (
    LibraryStats,
    StoreError,
    StoreNotFoundError,
    connect,
    ensure_directory as _ensure_directory,
    table_columns,
    table_exists,
)
from .categories import CategoryStoreMixin
from .maintenance import StoreMaintenanceMixin
from .prompts import PromptStoreMixin
from .relations import RelationStoreMixin
from .responses import ResponseStoreMixin
from .settings_store import SettingStoreMixin


class RecordStore(
    StoreMaintenanceMixin,
    PromptStoreMixin,
    CategoryStoreMixin,
    ResponseStoreMixin,
    RelationStoreMixin,
    SettingStoreMixin,
):
    """Compose store mixins for SQLite-backed storage.

    A store is an explicit handle: callers pass it to every lifecycle,
    reconcile, and import operation instead of relying on a module global.
    """

    def __init__(self, db_path: str | Path) -> None:
        """Initialise storage and ensure the base schema exists."""
        self._db_path = Path(db_path)
        _ensure_directory(self._db_path)
        try:
            with self.transaction() as conn:
                self._ensure_schema(conn)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to initialise SQLite schema at {self._db_path}") from exc

    @property
    def db_path(self) -> Path:
        """Return the backing database file."""
        return self._db_path

    def __repr__(self) -> str:
        return f"RecordStore({str(self._db_path)!r})"


__all__ = [
    "LibraryStats",
    "RecordStore",
    "StoreError",
    "StoreNotFoundError",
    "connect",
    "table_columns",
    "table_exists",
]
