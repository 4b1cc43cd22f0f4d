"""Tests for pre-upgrade database backups."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from conftest import make_prompt
from core.backup import BackupManager

if TYPE_CHECKING:
    from pathlib import Path

    from pytest import LogCaptureFixture

    from core.store import RecordStore


def _fixed_clock() -> datetime:
    return datetime(2026, 10, 1, 12, 30, 45, 123456, tzinfo=UTC)


def test_backup_copies_committed_rows(store: RecordStore, tmp_path: Path) -> None:
    store.add_prompts([make_prompt("p1")])
    manager = BackupManager(store.db_path, tmp_path / "backups", clock=_fixed_clock)

    backup = manager.backup("1.0.0", "2.1.0")

    assert backup is not None
    assert backup.name == "library-backup-v1.0.0-to-v2.1.0-20261001-123045-123456.db"
    with closing(sqlite3.connect(str(backup))) as conn:
        assert conn.execute("SELECT id FROM Prompt;").fetchall() == [("p1",)]


def test_backup_defaults_to_database_folder(store: RecordStore) -> None:
    manager = BackupManager(store.db_path)

    backup = manager.backup("1.0.0", "2.0.0")

    assert backup is not None
    assert backup.parent == store.db_path.parent
    assert manager.latest_backup() == backup
    assert manager.list_backups() == [backup]


def test_backup_of_missing_database_is_skipped(
    tmp_path: Path, caplog: LogCaptureFixture
) -> None:
    manager = BackupManager(tmp_path / "absent.db")

    with caplog.at_level(logging.WARNING, logger="prompt_library.backup"):
        assert manager.backup("1.0.0", "2.0.0") is None

    assert "skipping backup" in caplog.text
    assert manager.list_backups() == []
    assert manager.latest_backup() is None


def test_backup_failure_is_reported_not_raised(
    store: RecordStore, tmp_path: Path, caplog: LogCaptureFixture
) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    manager = BackupManager(store.db_path, blocker)

    with caplog.at_level(logging.ERROR, logger="prompt_library.backup"):
        assert manager.backup("1.0.0", "2.0.0") is None

    assert "Unable to back up" in caplog.text
