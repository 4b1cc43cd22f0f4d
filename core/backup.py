"""Pre-upgrade backups of the SQLite backing file.

A backup is a byte copy of the database file taken after folding the
write-ahead log into it, named
``<stem>-backup-v<from>-to-v<to>-<timestamp>.db``. Backup failures are logged
and reported as ``None``; they never abort the upgrade that requested them.

Updates:
  v0.2.0 - 2026-10-04 - Add backup listing and latest-backup lookup for restore hints.
  v0.1.0 - 2026-09-25 - Introduce BackupManager with WAL checkpoint before copy.
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
from contextlib import closing
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("prompt_library.backup")


class BackupManager:
    """Create and locate timestamped copies of a database file."""

    def __init__(
        self,
        db_path: str | Path,
        backup_dir: str | Path | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._backup_dir = Path(backup_dir) if backup_dir is not None else None
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def backup_dir(self) -> Path:
        """Directory receiving backups (defaults to the database folder)."""
        return self._backup_dir or self._db_path.parent

    def backup_name(self, before_version: str, after_version: str) -> str:
        timestamp = self._clock().strftime("%Y%m%d-%H%M%S-%f")
        return f"{self._db_path.stem}-backup-v{before_version}-to-v{after_version}-{timestamp}.db"

    def backup(self, before_version: str, after_version: str) -> Path | None:
        """Copy the database file ahead of an upgrade; return the copy or ``None``."""
        source = self._db_path
        if not source.exists():
            logger.warning("Source database not found at %s; skipping backup", source)
            return None

        target = self.backup_dir / self.backup_name(before_version, after_version)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            self._checkpoint(source)
            shutil.copy2(source, target)
        except (OSError, sqlite3.Error) as exc:
            logger.error("Unable to back up %s to %s: %s", source, target, exc)
            return None

        logger.info(
            "Backup created before upgrade %s -> %s: %s", before_version, after_version, target
        )
        return target

    def list_backups(self) -> list[Path]:
        """Return existing backups of this database, oldest first."""
        directory = self.backup_dir
        if not directory.exists():
            return []
        pattern = f"{self._db_path.stem}-backup-v*.db"
        return sorted(directory.glob(pattern), key=lambda path: (path.stat().st_mtime, path.name))

    def latest_backup(self) -> Path | None:
        backups = self.list_backups()
        return backups[-1] if backups else None

    @staticmethod
    def _checkpoint(source: Path) -> None:
        # Committed pages may still live in the -wal file; fold them in first.
        with closing(sqlite3.connect(str(source), timeout=30.0)) as conn:
            conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")


__all__ = ["BackupManager"]
