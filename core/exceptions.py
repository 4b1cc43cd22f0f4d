"""Common exception classes for the core package.

All exceptions ultimately inherit from :class:`PromptLibraryError`, allowing
callers to catch a single base class for any library failure while still
distinguishing structural, migration, and storage problems when needed.

Reconciliation does not raise for rows it refuses to delete because other
records depend on them; those rows are reported through the ``retained``
counter of :class:`core.reconciler.ReconcileResult` instead.

Updates:
  v0.3.0 - 2026-09-28 - Add StepFailure and NoUpgradePathError for the upgrade runner.
  v0.2.0 - 2026-09-21 - Add ImportFormatError for export file validation.
  v0.1.0 - 2026-09-14 - Created module with the store error hierarchy.
"""

from __future__ import annotations


class PromptLibraryError(Exception):
    """Base exception for prompt library failures."""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StoreError(PromptLibraryError):
    """Raised when the SQLite record store cannot complete an operation."""


class StoreNotFoundError(StoreError):
    """Raised when a requested record cannot be located."""


# ---------------------------------------------------------------------------
# Structural (import file) errors
# ---------------------------------------------------------------------------


class StructuralError(PromptLibraryError):
    """Raised when caller supplied data is malformed before any mutation happens."""


class ImportFormatError(StructuralError):
    """Raised when an import file is not a valid library export."""


# ---------------------------------------------------------------------------
# Schema migrations
# ---------------------------------------------------------------------------


class MigrationError(PromptLibraryError):
    """Base class for schema upgrade failures."""


class NoUpgradePathError(MigrationError):
    """Raised when no chain of declared upgrade edges leads to the target version."""

    def __init__(self, current: str, target: str, reason: str) -> None:
        super().__init__(f"No upgrade path defined from {current} to {target}: {reason}")
        self.current = current
        self.target = target
        self.reason = reason


class StepFailure(MigrationError):
    """Raised when a single upgrade hop reports failure."""

    def __init__(self, from_version: str, to_version: str, detail: str | None = None) -> None:
        message = f"Upgrade {from_version} -> {to_version} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.from_version = from_version
        self.to_version = to_version


__all__ = [
    "ImportFormatError",
    "MigrationError",
    "NoUpgradePathError",
    "PromptLibraryError",
    "StepFailure",
    "StoreError",
    "StoreNotFoundError",
    "StructuralError",
]
