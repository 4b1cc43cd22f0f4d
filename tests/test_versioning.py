"""Tests for the upgrade graph and the version resolver.

Updates:
  v0.3.0 - 2026-10-17 - Cover a caller-supplied version that lags the recorded one.
  v0.2.0 - 2026-10-06 - Cover forced re-runs and post-upgrade verification.
  v0.1.0 - 2026-09-28 - Cover path resolution, per-hop commits, and failure reporting.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from core.backup import BackupManager
from core.exceptions import NoUpgradePathError
from core.store import RecordStore, table_columns, table_exists
from core.upgrade_steps import add_user_accounts
from core.versioning import DEFAULT_UPGRADE_EDGES, UpgradeGraph, VersionResolver

if TYPE_CHECKING:
    from pathlib import Path


def _set_version(store: RecordStore, version: str) -> None:
    with store.transaction() as conn:
        store.write_version(conn, version)


def _resolver(store: RecordStore, tmp_path: Path, **kwargs: object) -> VersionResolver:
    backups = BackupManager(
        store.db_path, tmp_path / "backups", clock=lambda: datetime(2026, 10, 1, tzinfo=UTC)
    )
    return VersionResolver(store, backup_manager=backups, **kwargs)  # type: ignore[arg-type]


def test_graph_resolves_chain_in_order() -> None:
    graph = UpgradeGraph()

    assert graph.resolve("1.0.0", "2.1.0") == [("1.0.0", "2.0.0"), ("2.0.0", "2.1.0")]
    assert graph.resolve("2.0.0", "2.1.0") == [("2.0.0", "2.1.0")]
    assert graph.resolve("2.1.0", "2.1.0") == []
    assert graph.edges == list(DEFAULT_UPGRADE_EDGES)


def test_graph_rejects_unreachable_target() -> None:
    graph = UpgradeGraph()

    with pytest.raises(NoUpgradePathError, match="no upgrade leaves version 2.1.0"):
        graph.resolve("1.0.0", "3.0.0")
    assert graph.is_reachable("1.0.0", "3.0.0") is False
    # Edges only run forward.
    assert graph.is_reachable("2.1.0", "1.0.0") is False


def test_graph_detects_cycles() -> None:
    graph = UpgradeGraph([("1.0.0", "1.1.0"), ("1.1.0", "1.0.0")])

    with pytest.raises(NoUpgradePathError, match="cycle detected"):
        graph.resolve("1.0.0", "2.0.0")


def test_graph_rejects_conflicting_and_self_edges() -> None:
    graph = UpgradeGraph([("1.0.0", "2.0.0")])

    graph.add_edge("1.0.0", "2.0.0")
    with pytest.raises(ValueError):
        graph.add_edge("1.0.0", "1.5.0")
    with pytest.raises(ValueError):
        graph.add_edge("3.0.0", "3.0.0")


def test_check_upgrade_needed_reports_each_state(store: RecordStore) -> None:
    resolver = VersionResolver(store)

    status = resolver.check_upgrade_needed()
    assert (status.current_version, status.needs_upgrade, status.upgrade_type) == (
        None,
        True,
        "initialization",
    )

    _set_version(store, "1.0.0")
    status = resolver.check_upgrade_needed()
    assert status.upgrade_type == "upgrade"
    assert status.to_payload() == {
        "currentVersion": "1.0.0",
        "targetVersion": "2.1.0",
        "needsUpgrade": True,
        "upgradeType": "upgrade",
    }

    _set_version(store, "2.1.0")
    assert resolver.check_upgrade_needed().needs_upgrade is False


def test_upgrade_walks_every_hop_and_takes_one_backup(store: RecordStore, tmp_path: Path) -> None:
    _set_version(store, "1.0.0")
    resolver = _resolver(store, tmp_path)

    result = resolver.upgrade()

    assert result.success is True
    assert result.steps_applied == [("1.0.0", "2.0.0"), ("2.0.0", "2.1.0")]
    assert result.reached_version == "2.1.0"
    assert store.get_database_version() == "2.1.0"
    assert result.backup_path is not None
    assert result.backup_path.name.startswith("library-backup-v1.0.0-to-v2.1.0-")
    assert len(list((tmp_path / "backups").iterdir())) == 1
    with store.read() as conn:
        assert "isApproved" in table_columns(conn, "User")
        assert "userId" in table_columns(conn, "Response")
    assert result.to_payload()["success"] is True


def test_upgrade_records_initial_version_on_fresh_store(store: RecordStore) -> None:
    result = VersionResolver(store, target_version="2.0.0").upgrade()

    assert result.success is True
    assert result.from_version == "1.0.0"
    assert store.get_database_version() == "2.0.0"


def test_upgrade_to_current_version_is_a_no_op(store: RecordStore, tmp_path: Path) -> None:
    _set_version(store, "2.1.0")
    before = store.get_database_info()

    result = _resolver(store, tmp_path).upgrade("2.1.0", "2.1.0")

    assert result.success is True
    assert result.message == "Database already at version 2.1.0"
    assert result.backup_path is None
    assert not (tmp_path / "backups").exists()
    assert store.get_database_info() == before


def test_stale_current_version_cannot_move_the_record_backwards(
    store: RecordStore, tmp_path: Path
) -> None:
    resolver = _resolver(store, tmp_path)
    assert resolver.upgrade().success is True
    before = store.get_database_info()

    result = resolver.upgrade("1.0.0", "2.0.0")

    assert result.success is False
    assert result.reached_version == "2.1.0"
    assert "not 1.0.0" in (result.error or "")
    assert store.get_database_version() == "2.1.0"
    assert store.get_database_info() == before


def test_failed_step_keeps_earlier_hops(store: RecordStore, tmp_path: Path) -> None:
    _set_version(store, "1.0.0")

    def broken_step(conn: sqlite3.Connection) -> bool:
        conn.execute("CREATE TABLE Scratch (id TEXT);")
        return False

    resolver = _resolver(
        store,
        tmp_path,
        steps={("1.0.0", "2.0.0"): add_user_accounts, ("2.0.0", "2.1.0"): broken_step},
    )

    result = resolver.upgrade()

    assert result.success is False
    assert result.steps_applied == [("1.0.0", "2.0.0")]
    assert result.reached_version == "2.0.0"
    assert store.get_database_version() == "2.0.0"
    assert result.error is not None
    assert "2.0.0 -> 2.1.0" in result.error
    assert "Restore from the backup" in result.error
    with store.read() as conn:
        assert table_exists(conn, "User")
        assert not table_exists(conn, "Scratch")
    assert result.to_payload() == {
        "success": False,
        "error": result.error,
        "backupPath": str(result.backup_path),
    }


def test_step_raising_sqlite_error_rolls_back_its_hop(store: RecordStore) -> None:
    _set_version(store, "1.0.0")

    def exploding_step(conn: sqlite3.Connection) -> bool:
        conn.execute("CREATE TABLE Scratch (id TEXT);")
        conn.execute("INSERT INTO MissingTable VALUES (1);")
        return True

    resolver = VersionResolver(
        store,
        target_version="2.0.0",
        steps={("1.0.0", "2.0.0"): exploding_step},
    )

    result = resolver.upgrade()

    assert result.success is False
    assert store.get_database_version() == "1.0.0"
    with store.read() as conn:
        assert not table_exists(conn, "Scratch")


def test_unreachable_target_fails_without_backup(store: RecordStore, tmp_path: Path) -> None:
    _set_version(store, "1.0.0")

    result = _resolver(store, tmp_path, target_version="9.0.0").upgrade()

    assert result.success is False
    assert "No upgrade path" in (result.error or "")
    assert result.backup_path is None
    assert store.get_database_version() == "1.0.0"


def test_missing_step_registration_fails_before_any_hop(store: RecordStore) -> None:
    _set_version(store, "1.0.0")
    resolver = VersionResolver(store, steps={("1.0.0", "2.0.0"): add_user_accounts})

    result = resolver.upgrade()

    assert result.success is False
    assert "No upgrade step registered for 2.0.0 -> 2.1.0" in (result.error or "")
    assert store.get_database_version() == "1.0.0"


def test_forced_upgrade_reruns_steps_without_moving_version(
    store: RecordStore, tmp_path: Path
) -> None:
    _set_version(store, "1.0.0")
    resolver = _resolver(store, tmp_path)
    assert resolver.upgrade().success

    result = resolver.upgrade(force=True)

    assert result.success is True
    assert result.steps_applied == [("1.0.0", "2.0.0"), ("2.0.0", "2.1.0")]
    assert store.get_database_version() == "2.1.0"


def test_recorded_version_is_always_on_the_edge_list(store: RecordStore) -> None:
    _set_version(store, "1.0.0")
    graph = UpgradeGraph()
    resolver = VersionResolver(store, target_version="2.0.0", graph=graph)
    assert resolver.upgrade().success
    assert graph.is_reachable("1.0.0", store.get_database_version() or "")

    resolver = VersionResolver(store, target_version="2.1.0", graph=graph)
    assert resolver.upgrade().success
    assert store.get_database_version() == "2.1.0"
