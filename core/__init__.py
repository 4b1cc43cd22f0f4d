"""Core persistence lifecycle services for the prompt library.

Updates:
  v0.4.0 - 2026-10-09 - Export the PromptLibrary facade and startup hook.
  v0.3.0 - 2026-10-07 - Export merge import and export helpers.
  v0.2.0 - 2026-10-03 - Export collection reconciliation results and scopes.
  v0.1.0 - 2026-09-28 - Surface RecordStore, version resolution, and backups.
"""

from .backup import BackupManager
from .exceptions import (
    ImportFormatError,
    MigrationError,
    NoUpgradePathError,
    PromptLibraryError,
    StepFailure,
    StoreError,
    StoreNotFoundError,
    StructuralError,
)
from .importer import (
    ImportCounts,
    ImportSummary,
    LibraryImporter,
    MergeOutcome,
    build_export_payload,
    export_library,
    import_library_file,
    merge_import,
)
from .lifecycle import PromptLibrary, initialize_database
from .reconciler import (
    CORE_SCOPE,
    USER_SCOPE,
    CollectionKind,
    CollectionReconciler,
    ReconcileResult,
    ReconcileScope,
)
from .store import LibraryStats, RecordStore
from .versioning import UpgradeGraph, UpgradeResult, VersionResolver, VersionStatus

__all__ = [
    "CORE_SCOPE",
    "USER_SCOPE",
    "BackupManager",
    "CollectionKind",
    "CollectionReconciler",
    "ImportCounts",
    "ImportFormatError",
    "ImportSummary",
    "LibraryImporter",
    "LibraryStats",
    "MergeOutcome",
    "MigrationError",
    "NoUpgradePathError",
    "PromptLibrary",
    "PromptLibraryError",
    "ReconcileResult",
    "ReconcileScope",
    "RecordStore",
    "StepFailure",
    "StoreError",
    "StoreNotFoundError",
    "StructuralError",
    "UpgradeGraph",
    "UpgradeResult",
    "VersionResolver",
    "VersionStatus",
    "build_export_payload",
    "export_library",
    "import_library_file",
    "initialize_database",
    "merge_import",
]
