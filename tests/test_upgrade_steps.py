"""Tests for the registered schema upgrade steps."""

from __future__ import annotations

import sqlite3

import pytest

from core.store import RecordStore, table_columns, table_exists
from core.upgrade_steps import (
    add_user_accounts,
    add_user_approval,
    default_upgrade_steps,
    upgrade_step,
)


def _insert_user(conn: sqlite3.Connection, user_id: str) -> None:
    conn.execute(
        "INSERT INTO User (id, email, password, updatedAt) VALUES (?, ?, 'hash', '2026-01-01');",
        (user_id, f"{user_id}@example.com"),
    )


def test_registry_holds_both_default_steps() -> None:
    steps = default_upgrade_steps()

    assert steps[("1.0.0", "2.0.0")] is add_user_accounts
    assert steps[("2.0.0", "2.1.0")] is add_user_approval


def test_registering_the_same_edge_twice_is_rejected() -> None:
    with pytest.raises(ValueError):
        upgrade_step("1.0.0", "2.0.0")(add_user_accounts)


def test_user_accounts_step_is_idempotent(store: RecordStore) -> None:
    with store.transaction() as conn:
        assert add_user_accounts(conn) is True
        assert add_user_accounts(conn) is True
        for table in ("User", "Session", "UserSetting", "UserFavorite", "UserRecentlyUsed"):
            assert table_exists(conn, table)
        assert "userId" in table_columns(conn, "Response")


def test_user_approval_step_approves_existing_users_once(store: RecordStore) -> None:
    with store.transaction() as conn:
        add_user_accounts(conn)
        _insert_user(conn, "u1")
        _insert_user(conn, "u2")

        assert add_user_approval(conn) is True
        assert add_user_approval(conn) is True

        approved = conn.execute("SELECT COUNT(*) FROM User WHERE isApproved = 1;").fetchone()[0]
    assert approved == 2


def test_user_approval_step_reports_failure_without_user_table(store: RecordStore) -> None:
    with store.transaction() as conn:
        assert add_user_approval(conn) is False
