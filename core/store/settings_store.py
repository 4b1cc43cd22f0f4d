"""Key/value application settings stored as JSON text.

Updates:
  v0.1.0 - 2026-09-22 - Add setting get/set/remove helpers.
"""

from __future__ import annotations

import json
import sqlite3
from typing import TYPE_CHECKING, Any

from .base import ConnectionMixin, StoreError, json_dumps, json_loads_optional

if TYPE_CHECKING:
    from collections.abc import Mapping


class SettingStoreMixin(ConnectionMixin):
    """``Setting`` rows; values are JSON encoded."""

    def upsert_setting(self, conn: sqlite3.Connection, key: str, value: Any) -> None:
        conn.execute(
            "INSERT INTO Setting (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value;",
            (key, json_dumps(value) or json.dumps(None)),
        )

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the decoded value stored under ``key`` or ``default``."""
        try:
            with self.read() as conn:
                row = conn.execute("SELECT value FROM Setting WHERE key = ?;", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read setting {key}") from exc
        if row is None:
            return default
        return json_loads_optional(row["value"])

    def get_settings(self, defaults: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Return every stored setting layered over ``defaults``."""
        values: dict[str, Any] = dict(defaults or {})
        try:
            with self.read() as conn:
                rows = conn.execute("SELECT key, value FROM Setting ORDER BY key;").fetchall()
        except sqlite3.Error as exc:
            raise StoreError("Failed to read settings") from exc
        for row in rows:
            values[row["key"]] = json_loads_optional(row["value"])
        return values

    def set_setting(self, key: str, value: Any) -> None:
        try:
            with self.transaction() as conn:
                self.upsert_setting(conn, key, value)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to store setting {key}") from exc

    def remove_setting(self, key: str) -> bool:
        """Delete ``key``; return False when it was not stored."""
        try:
            with self.transaction() as conn:
                cursor = conn.execute("DELETE FROM Setting WHERE key = ?;", (key,))
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to remove setting {key}") from exc
        return cursor.rowcount > 0


__all__ = ["SettingStoreMixin"]
