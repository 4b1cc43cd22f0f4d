"""Schema version graph and the upgrade runner that walks it.

Versions form a forward-only graph in which every version has at most one
outgoing edge. Resolving ``current -> target`` follows those edges and fails
loudly when it reaches a dead end or revisits a version. Each hop runs in its
own transaction together with the DatabaseInfo version write, so an interrupted
upgrade leaves the store at the last version that fully applied.

Updates:
  v0.3.1 - 2026-10-17 - Reject a caller-supplied current version that differs from the record.
  v0.3.0 - 2026-10-06 - Verify the recorded version after an upgrade completes.
  v0.2.0 - 2026-10-02 - Add forced step re-runs for operator repairs.
  v0.1.0 - 2026-09-28 - UpgradeGraph with cycle detection and per-hop transactions.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from config.settings import DEFAULT_INIT_VERSION, DEFAULT_TARGET_VERSION

from .exceptions import NoUpgradePathError, StepFailure, StoreError
from .upgrade_steps import default_upgrade_steps

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

    from .backup import BackupManager
    from .store import RecordStore
    from .upgrade_steps import UpgradeStep

logger = logging.getLogger("prompt_library.migrations")

DEFAULT_UPGRADE_EDGES: tuple[tuple[str, str], ...] = (
    ("1.0.0", "2.0.0"),
    ("2.0.0", "2.1.0"),
)

UpgradeType = Literal["initialization", "upgrade", "current"]


class UpgradeGraph:
    """Directed version graph with a single outgoing edge per version."""

    def __init__(self, edges: Iterable[tuple[str, str]] = DEFAULT_UPGRADE_EDGES) -> None:
        self._edges: dict[str, str] = {}
        for source, target in edges:
            self.add_edge(source, target)

    def add_edge(self, source: str, target: str) -> None:
        """Declare that ``source`` upgrades directly to ``target``."""
        if source == target:
            raise ValueError(f"Upgrade edge {source} -> {target} points at itself")
        existing = self._edges.get(source)
        if existing is not None and existing != target:
            raise ValueError(
                f"Version {source} already upgrades to {existing}; cannot add edge to {target}"
            )
        self._edges[source] = target

    @property
    def edges(self) -> list[tuple[str, str]]:
        return list(self._edges.items())

    def next_version(self, version: str) -> str | None:
        return self._edges.get(version)

    def resolve(self, current: str, target: str) -> list[tuple[str, str]]:
        """Return the ordered hops leading from ``current`` to ``target``.

        Raises:
            NoUpgradePathError: when the walk hits a version without an outgoing
                edge or comes back to a version it already passed through.
        """
        hops: list[tuple[str, str]] = []
        visited = {current}
        node = current
        while node != target:
            following = self._edges.get(node)
            if following is None:
                raise NoUpgradePathError(current, target, f"no upgrade leaves version {node}")
            if following in visited:
                raise NoUpgradePathError(
                    current, target, f"cycle detected: {node} -> {following} was already visited"
                )
            hops.append((node, following))
            visited.add(following)
            node = following
        return hops

    def is_reachable(self, current: str, target: str) -> bool:
        try:
            self.resolve(current, target)
        except NoUpgradePathError:
            return False
        return True


@dataclass(slots=True, frozen=True)
class VersionStatus:
    """Outcome of comparing the recorded schema version with the target."""

    current_version: str | None
    target_version: str
    needs_upgrade: bool
    upgrade_type: UpgradeType

    def to_payload(self) -> dict[str, Any]:
        return {
            "currentVersion": self.current_version,
            "targetVersion": self.target_version,
            "needsUpgrade": self.needs_upgrade,
            "upgradeType": self.upgrade_type,
        }


@dataclass(slots=True)
class UpgradeResult:
    """Summary of an upgrade call."""

    success: bool
    from_version: str | None
    to_version: str
    reached_version: str | None = None
    steps_applied: list[tuple[str, str]] = field(default_factory=list)
    backup_path: Path | None = None
    message: str | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Return ``{success, message}`` or ``{success, error}`` for API callers."""
        payload: dict[str, Any] = {"success": self.success}
        if self.success:
            payload["message"] = self.message
        else:
            payload["error"] = self.error
        if self.backup_path is not None:
            payload["backupPath"] = str(self.backup_path)
        return payload


class VersionResolver:
    """Bring a record store to the target schema version."""

    def __init__(
        self,
        store: RecordStore,
        *,
        target_version: str = DEFAULT_TARGET_VERSION,
        init_version: str = DEFAULT_INIT_VERSION,
        graph: UpgradeGraph | None = None,
        steps: Mapping[tuple[str, str], UpgradeStep] | None = None,
        backup_manager: BackupManager | None = None,
    ) -> None:
        self._store = store
        self._target_version = target_version
        self._init_version = init_version
        self._graph = graph or UpgradeGraph()
        self._steps = dict(steps) if steps is not None else default_upgrade_steps()
        self._backup_manager = backup_manager

    @property
    def target_version(self) -> str:
        return self._target_version

    @property
    def graph(self) -> UpgradeGraph:
        return self._graph

    def current_version(self) -> str | None:
        return self._store.get_database_version()

    def check_upgrade_needed(self) -> VersionStatus:
        """Compare the recorded version with the configured target."""
        current = self.current_version()
        if current is None:
            return VersionStatus(None, self._target_version, True, "initialization")
        if current != self._target_version:
            return VersionStatus(current, self._target_version, True, "upgrade")
        return VersionStatus(current, self._target_version, False, "current")

    def upgrade(
        self,
        current: str | None = None,
        target: str | None = None,
        *,
        force: bool = False,
    ) -> UpgradeResult:
        """Run every hop from ``current`` to ``target``.

        ``current`` must match the recorded version; a stale value fails without
        touching the store. A backup is taken once before the first hop. When
        ``force`` is set and the store is already current, the steps leading from
        the initial version to the target are re-run (they are idempotent)
        without touching the recorded version.
        """
        target = target or self._target_version
        try:
            recorded = self.current_version()
            if recorded is None:
                recorded = self._record_initial_version()
        except (StoreError, sqlite3.Error) as exc:
            logger.error("Unable to read the current schema version: %s", exc)
            return UpgradeResult(False, current, target, error=str(exc))
        if current is not None and current != recorded:
            message = f"Database is at version {recorded}, not {current}; refusing to upgrade"
            logger.error(message)
            return UpgradeResult(False, current, target, reached_version=recorded, error=message)
        current = recorded

        try:
            hops = self._graph.resolve(current, target)
        except NoUpgradePathError as exc:
            logger.error("%s", exc)
            return UpgradeResult(False, current, target, reached_version=current, error=str(exc))

        if not hops:
            if force:
                return self._rerun_steps(current, target)
            logger.info("Database already at version %s; nothing to upgrade", current)
            return UpgradeResult(
                True,
                current,
                target,
                reached_version=current,
                message=f"Database already at version {target}",
            )

        missing = [hop for hop in hops if hop not in self._steps]
        if missing:
            detail = ", ".join(f"{src} -> {dst}" for src, dst in missing)
            message = f"No upgrade step registered for {detail}"
            logger.error(message)
            return UpgradeResult(False, current, target, reached_version=current, error=message)

        backup_path = self._take_backup(current, target)
        result = UpgradeResult(
            False, current, target, reached_version=current, backup_path=backup_path
        )
        for source, destination in hops:
            logger.info("Applying upgrade %s -> %s", source, destination)
            try:
                self._apply_hop(source, destination, record_version=True)
            except (StepFailure, StoreError, sqlite3.Error) as exc:
                result.error = self._failure_message(exc, result.reached_version, backup_path)
                logger.error(result.error)
                return result
            result.steps_applied.append((source, destination))
            result.reached_version = destination

        recorded = self.current_version()
        if recorded != target:
            result.error = self._failure_message(
                StepFailure(current, target, f"verification read back version {recorded}"),
                recorded,
                backup_path,
            )
            logger.error(result.error)
            return result

        result.success = True
        result.message = f"Database upgraded from {current} to {target}"
        logger.info(result.message)
        return result

    # Internal helpers --------------------------------------------------- #

    def _record_initial_version(self) -> str:
        with self._store.transaction() as conn:
            existing = self._store.read_version(conn)
            if existing is not None:
                return existing
            self._store.write_version(conn, self._init_version)
        logger.info("Recorded initial database version %s", self._init_version)
        return self._init_version

    def _take_backup(self, current: str, target: str) -> Path | None:
        if self._backup_manager is None:
            return None
        return self._backup_manager.backup(current, target)

    def _apply_hop(self, source: str, destination: str, *, record_version: bool) -> None:
        step = self._steps[(source, destination)]
        with self._store.transaction() as conn:
            if not step(conn):
                raise StepFailure(source, destination)
            if record_version:
                self._store.write_version(conn, destination)

    def _rerun_steps(self, current: str, target: str) -> UpgradeResult:
        try:
            hops = self._graph.resolve(self._init_version, target)
        except NoUpgradePathError as exc:
            logger.error("%s", exc)
            return UpgradeResult(False, current, target, reached_version=current, error=str(exc))
        backup_path = self._take_backup(current, target)
        result = UpgradeResult(
            False, current, target, reached_version=current, backup_path=backup_path
        )
        for source, destination in hops:
            if (source, destination) not in self._steps:
                continue
            logger.info("Re-running upgrade step %s -> %s", source, destination)
            try:
                self._apply_hop(source, destination, record_version=False)
            except (StepFailure, StoreError, sqlite3.Error) as exc:
                result.error = self._failure_message(exc, current, backup_path)
                logger.error(result.error)
                return result
            result.steps_applied.append((source, destination))
        result.success = True
        result.message = f"Re-applied {len(result.steps_applied)} upgrade step(s) at {current}"
        logger.info(result.message)
        return result

    @staticmethod
    def _failure_message(exc: Exception, reached: str | None, backup_path: Path | None) -> str:
        message = f"{exc}; database left at version {reached}"
        if backup_path is not None:
            message += f". Restore from the backup at {backup_path} if needed"
        return message


__all__ = [
    "DEFAULT_UPGRADE_EDGES",
    "UpgradeGraph",
    "UpgradeResult",
    "VersionResolver",
    "VersionStatus",
]
