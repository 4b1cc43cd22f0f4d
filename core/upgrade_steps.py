"""Registered schema upgrade steps keyed by ``(from_version, to_version)``.

Every step receives a connection that is already inside the hop's transaction
and returns ``True`` on success. Steps must be safe to run again on a store
where they already ran: inspect the schema before altering it and count affected
rows before normalising data.

Updates:
  v0.2.0 - 2026-10-05 - Add the 2.0.0 -> 2.1.0 user approval step.
  v0.1.0 - 2026-09-28 - Registry decorator and the 1.0.0 -> 2.0.0 user accounts step.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable

from core.store import table_columns, table_exists

logger = logging.getLogger("prompt_library.migrations")

UpgradeStep = Callable[[sqlite3.Connection], bool]

_REGISTRY: dict[tuple[str, str], UpgradeStep] = {}


def upgrade_step(from_version: str, to_version: str) -> Callable[[UpgradeStep], UpgradeStep]:
    """Register the decorated function as the step for ``from_version -> to_version``."""

    def _register(func: UpgradeStep) -> UpgradeStep:
        key = (from_version, to_version)
        if key in _REGISTRY:
            raise ValueError(f"An upgrade step for {from_version} -> {to_version} already exists")
        _REGISTRY[key] = func
        return func

    return _register


def default_upgrade_steps() -> dict[tuple[str, str], UpgradeStep]:
    """Return a copy of the registered steps."""
    return dict(_REGISTRY)


def column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    return column in table_columns(conn, table)


_USER_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS User (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL,
        password TEXT NOT NULL,
        firstName TEXT,
        lastName TEXT,
        isAdmin INTEGER NOT NULL DEFAULT 0,
        createdAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updatedAt TEXT NOT NULL
    );
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS User_email_key ON User(email);",
    """
    CREATE TABLE IF NOT EXISTS Session (
        id TEXT PRIMARY KEY,
        userId TEXT NOT NULL REFERENCES User(id) ON DELETE CASCADE ON UPDATE CASCADE,
        token TEXT NOT NULL,
        expiresAt TEXT NOT NULL,
        createdAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS Session_token_key ON Session(token);",
    """
    CREATE TABLE IF NOT EXISTS UserSetting (
        id TEXT PRIMARY KEY,
        userId TEXT NOT NULL REFERENCES User(id) ON DELETE CASCADE ON UPDATE CASCADE,
        key TEXT NOT NULL,
        value TEXT NOT NULL
    );
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS UserSetting_userId_key_key ON UserSetting(userId, key);",
    """
    CREATE TABLE IF NOT EXISTS UserFavorite (
        id TEXT PRIMARY KEY,
        userId TEXT NOT NULL REFERENCES User(id) ON DELETE CASCADE ON UPDATE CASCADE,
        promptId TEXT NOT NULL REFERENCES Prompt(id) ON DELETE CASCADE ON UPDATE CASCADE
    );
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS UserFavorite_userId_promptId_key "
    "ON UserFavorite(userId, promptId);",
    """
    CREATE TABLE IF NOT EXISTS UserRecentlyUsed (
        id TEXT PRIMARY KEY,
        userId TEXT NOT NULL REFERENCES User(id) ON DELETE CASCADE ON UPDATE CASCADE,
        promptId TEXT NOT NULL REFERENCES Prompt(id) ON DELETE CASCADE ON UPDATE CASCADE,
        usedAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    "CREATE INDEX IF NOT EXISTS UserRecentlyUsed_usedAt_idx ON UserRecentlyUsed(usedAt);",
    "CREATE UNIQUE INDEX IF NOT EXISTS UserRecentlyUsed_userId_promptId_key "
    "ON UserRecentlyUsed(userId, promptId);",
)


@upgrade_step("1.0.0", "2.0.0")
def add_user_accounts(conn: sqlite3.Connection) -> bool:
    """Create the user account tables and attach an optional owner to responses."""
    try:
        created = [
            table
            for table in ("User", "Session", "UserSetting", "UserFavorite", "UserRecentlyUsed")
            if not table_exists(conn, table)
        ]
        for statement in _USER_SCHEMA:
            conn.execute(statement)
        if created:
            logger.info("Created user account tables: %s", ", ".join(created))

        if column_exists(conn, "Response", "userId"):
            logger.info("Response.userId already present")
        else:
            conn.execute(
                "ALTER TABLE Response ADD COLUMN userId TEXT "
                "REFERENCES User(id) ON DELETE SET NULL ON UPDATE CASCADE;"
            )
            logger.info("Added Response.userId column")
    except sqlite3.Error:
        logger.exception("User account schema upgrade failed")
        return False
    return True


@upgrade_step("2.0.0", "2.1.0")
def add_user_approval(conn: sqlite3.Connection) -> bool:
    """Add ``User.isApproved`` and approve every user that existed before the flag."""
    try:
        if column_exists(conn, "User", "isApproved"):
            logger.info("User.isApproved already present")
        else:
            conn.execute("ALTER TABLE User ADD COLUMN isApproved INTEGER NOT NULL DEFAULT 0;")
            logger.info("Added User.isApproved column")

        pending = int(
            conn.execute(
                "SELECT COUNT(*) FROM User WHERE isApproved = 0 OR isApproved IS NULL;"
            ).fetchone()[0]
        )
        if pending == 0:
            logger.info("No existing users need approval")
        else:
            conn.execute(
                "UPDATE User SET isApproved = 1 WHERE isApproved = 0 OR isApproved IS NULL;"
            )
            logger.info("Approved %d existing user(s)", pending)
    except sqlite3.Error:
        logger.exception("User approval schema upgrade failed")
        return False
    return True


__all__ = [
    "UpgradeStep",
    "add_user_accounts",
    "add_user_approval",
    "column_exists",
    "default_upgrade_steps",
    "upgrade_step",
]
