"""Startup hook, version endpoints, and the prompt library facade.

``initialize_database`` is called once at process start: it records the
initial version and seeds defaults on a fresh store, then upgrades the store to
the configured target. It is idempotent; on an up-to-date store it performs no
writes. ``PromptLibrary`` bundles a store handle with the reconciler, importer,
and version resolver that operate on it.

Updates:
  v0.3.0 - 2026-10-09 - Add append-only helpers returning added/skipped counts.
  v0.2.0 - 2026-10-04 - Seed default categories, prompts, and settings on first boot.
  v0.1.0 - 2026-09-29 - Startup initialisation and version check/upgrade endpoints.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from catalog import builtin_catalog_resource
from config.settings import PromptLibrarySettings, load_settings
from models.category_model import DEFAULT_CATEGORIES, Category
from models.prompt_model import Prompt, PromptResponse

from .backup import BackupManager
from .exceptions import StoreError
from .importer import ImportSummary, LibraryImporter, export_library
from .reconciler import (
    CORE_SCOPE,
    USER_SCOPE,
    CollectionKind,
    CollectionReconciler,
    ReconcileResult,
    ReconcileScope,
)
from .store import RecordStore
from .versioning import UpgradeResult, VersionResolver, VersionStatus

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

logger = logging.getLogger("prompt_library.lifecycle")

DEFAULT_SETTINGS: dict[str, Any] = {"fontSize": "medium", "theme": "light"}


def load_default_prompts() -> list[Prompt]:
    """Return the packaged core prompts."""
    resource = builtin_catalog_resource()
    payload = json.loads(resource.read_text(encoding="utf-8"))
    entries = payload["prompts"] if isinstance(payload, dict) else payload
    return [replace(Prompt.from_payload(entry), is_user_created=False) for entry in entries]


def seed_defaults(store: RecordStore, conn: sqlite3.Connection) -> dict[str, int]:
    """Insert default categories, prompts, and settings that are not stored yet."""
    seeded = {"categories": 0, "prompts": 0, "settings": 0}
    for category in DEFAULT_CATEGORIES:
        if not store.has_category(conn, category.id):
            store.insert_category(conn, category)
            seeded["categories"] += 1
    for prompt in load_default_prompts():
        if store.has_prompt(conn, prompt.id):
            continue
        store.insert_prompt(conn, prompt)
        if prompt.tags:
            store.replace_prompt_tags(conn, prompt.id, prompt.tags)
        seeded["prompts"] += 1
    for key, value in DEFAULT_SETTINGS.items():
        if conn.execute("SELECT 1 FROM Setting WHERE key = ?;", (key,)).fetchone() is None:
            store.upsert_setting(conn, key, value)
            seeded["settings"] += 1
    return seeded


def build_resolver(
    store: RecordStore, settings: PromptLibrarySettings
) -> VersionResolver:
    return VersionResolver(
        store,
        target_version=settings.target_version,
        init_version=settings.init_version,
        backup_manager=BackupManager(store.db_path, settings.backup_dir),
    )


def initialize_database(
    store: RecordStore,
    settings: PromptLibrarySettings | None = None,
    *,
    resolver: VersionResolver | None = None,
) -> bool:
    """Prepare ``store`` for traffic; return False when it must not be served.

    A fresh store gets the initial version record and (optionally) default data
    in one transaction. The store is then upgraded to the target version.
    """
    settings = settings or load_settings(db_path=store.db_path)
    resolver = resolver or build_resolver(store, settings)

    try:
        if store.get_database_version() is None:
            with store.transaction() as conn:
                if store.read_version(conn) is None:
                    store.write_version(conn, settings.init_version)
                    logger.info("Initialised new database at version %s", settings.init_version)
                    if settings.seed_defaults:
                        seeded = seed_defaults(store, conn)
                        logger.info("Seeded default data: %s", seeded)
    except (StoreError, sqlite3.Error, OSError, ValueError) as exc:
        logger.critical("Database initialisation failed: %s", exc)
        return False

    try:
        status = resolver.check_upgrade_needed()
    except StoreError as exc:
        logger.critical("Unable to check the database version: %s", exc)
        return False
    if not status.needs_upgrade:
        logger.info("Database is at version %s", status.current_version)
        return True

    logger.info(
        "Database upgrade required: %s -> %s", status.current_version, status.target_version
    )
    result = resolver.upgrade(status.current_version, status.target_version)
    if not result.success:
        logger.critical("Database upgrade failed; refusing to start: %s", result.error)
        return False
    return True


class PromptLibrary:
    """Facade over a record store and the services that operate on it."""

    def __init__(
        self,
        store: RecordStore,
        settings: PromptLibrarySettings | None = None,
        *,
        resolver: VersionResolver | None = None,
        reconciler: CollectionReconciler | None = None,
        importer: LibraryImporter | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or load_settings(db_path=store.db_path)
        self._resolver = resolver or build_resolver(store, self._settings)
        self._reconciler = reconciler or CollectionReconciler(store)
        self._importer = importer or LibraryImporter(
            store,
            assume_prompt_exists_on_lookup_error=(
                self._settings.assume_prompt_exists_on_lookup_error
            ),
        )

    @classmethod
    def from_settings(cls, settings: PromptLibrarySettings | None = None) -> PromptLibrary:
        """Open the store configured by ``settings``."""
        settings = settings or load_settings()
        return cls(RecordStore(settings.db_path), settings)

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def settings(self) -> PromptLibrarySettings:
        return self._settings

    @property
    def backup_manager(self) -> BackupManager:
        return BackupManager(self._store.db_path, self._settings.backup_dir)

    # Lifecycle ---------------------------------------------------------- #

    def initialize(self) -> bool:
        return initialize_database(self._store, self._settings, resolver=self._resolver)

    def check_version(self) -> VersionStatus:
        return self._resolver.check_upgrade_needed()

    def trigger_upgrade(self, *, force: bool = False) -> UpgradeResult:
        """Upgrade to the configured target now (operator request)."""
        return self._resolver.upgrade(force=force)

    # Replace-all collections ------------------------------------------- #

    def store_user_prompts(self, prompts: Iterable[Prompt | Mapping[str, Any]]) -> ReconcileResult:
        return self._reconciler.reconcile(CollectionKind.PROMPTS, prompts, USER_SCOPE)

    def store_core_prompts(self, prompts: Iterable[Prompt | Mapping[str, Any]]) -> ReconcileResult:
        return self._reconciler.reconcile(CollectionKind.PROMPTS, prompts, CORE_SCOPE)

    def store_user_categories(
        self, categories: Iterable[Category | Mapping[str, Any]]
    ) -> ReconcileResult:
        return self._reconciler.reconcile(CollectionKind.CATEGORIES, categories, USER_SCOPE)

    def store_favorites(
        self, prompt_ids: Iterable[str], *, user_id: str | None = None
    ) -> ReconcileResult:
        return self._reconciler.reconcile(
            CollectionKind.FAVORITES, prompt_ids, ReconcileScope(user_id=user_id)
        )

    def store_recently_used(
        self, prompt_ids: Iterable[str], *, user_id: str | None = None
    ) -> ReconcileResult:
        """Replace the recently-used list; ``prompt_ids`` is ordered newest first."""
        return self._reconciler.reconcile(
            CollectionKind.RECENTLY_USED, prompt_ids, ReconcileScope(user_id=user_id)
        )

    def store_responses(
        self, responses: Iterable[PromptResponse | Mapping[str, Any]]
    ) -> ReconcileResult:
        return self._reconciler.reconcile(CollectionKind.RESPONSES, responses)

    # Append-only helpers ------------------------------------------------ #

    def add_user_prompts(self, prompts: Iterable[Prompt | Mapping[str, Any]]) -> dict[str, Any]:
        """Insert prompts with unseen ids; existing prompts are left untouched."""
        try:
            items = [replace(Prompt.coerce(item), is_user_created=True) for item in prompts]
            added, skipped = self._store.add_prompts(items)
        except (KeyError, TypeError, ValueError, StoreError) as exc:
            logger.error("Adding user prompts failed: %s", exc)
            return {"success": False, "error": str(exc)}
        return {"success": True, "added": added, "skipped": skipped}

    def add_user_categories(
        self, categories: Iterable[Category | Mapping[str, Any]]
    ) -> dict[str, Any]:
        try:
            items = [replace(Category.coerce(item), is_user_created=True) for item in categories]
            added, skipped = self._store.add_categories(items)
        except (KeyError, TypeError, ValueError, StoreError) as exc:
            logger.error("Adding user categories failed: %s", exc)
            return {"success": False, "error": str(exc)}
        return {"success": True, "added": added, "skipped": skipped}

    def add_responses(
        self, responses: Iterable[PromptResponse | Mapping[str, Any]]
    ) -> dict[str, Any]:
        try:
            items = [PromptResponse.coerce(item) for item in responses]
            added, skipped = self._store.add_responses(items)
        except (KeyError, TypeError, ValueError, StoreError) as exc:
            logger.error("Adding responses failed: %s", exc)
            return {"success": False, "error": str(exc)}
        return {"success": True, "added": added, "skipped": skipped}

    # Import / export ---------------------------------------------------- #

    def import_file(self, path: Path, *, include_responses: bool = True) -> ImportSummary:
        return self._importer.import_file(path, include_responses=include_responses)

    def import_payload(
        self, payload: Mapping[str, Any], *, include_responses: bool = True
    ) -> ImportSummary:
        return self._importer.import_payload(payload, include_responses=include_responses)

    def export_to(self, path: Path, *, include_responses: bool | None = None) -> Path:
        if include_responses is None:
            include_responses = self._settings.export_include_responses
        return export_library(self._store, path, include_responses=include_responses)

    # Settings ----------------------------------------------------------- #

    def get_user_preferences(self) -> dict[str, Any]:
        """Return stored application settings layered over the defaults."""
        return self._store.get_settings(DEFAULT_SETTINGS)


__all__ = [
    "DEFAULT_SETTINGS",
    "PromptLibrary",
    "build_resolver",
    "initialize_database",
    "load_default_prompts",
    "seed_defaults",
]
