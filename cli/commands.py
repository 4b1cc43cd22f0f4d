"""CLI command handlers for prompt library maintenance.

Updates:
  v0.2.0 - 2026-10-10 - Add import, export, stats, and backup listing handlers.
  v0.1.0 - 2026-09-30 - Initial init/status/upgrade handlers.
"""

from __future__ import annotations

import argparse
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from core.exceptions import ImportFormatError, StoreError

from .utils import format_bytes, print_and_log

if TYPE_CHECKING:
    from core.lifecycle import PromptLibrary

CommandHandler = Callable[["PromptLibrary", argparse.Namespace, logging.Logger], int]

EXIT_UPGRADE_PENDING = 1
EXIT_INIT_FAILED = 3
EXIT_UPGRADE_FAILED = 4
EXIT_IMPORT_INVALID = 5
EXIT_IO_FAILED = 6


@dataclass(frozen=True)
class CommandSpec:
    """Metadata for dispatching CLI command handlers."""

    handler: CommandHandler
    requires_initialized: bool = True


def run_init(library: PromptLibrary, args: argparse.Namespace, logger: logging.Logger) -> int:
    del args
    if not library.initialize():
        print_and_log(logger, logging.ERROR, "Database initialisation failed; see log for details")
        return EXIT_INIT_FAILED
    version = library.store.get_database_version()
    print_and_log(logger, logging.INFO, f"Database ready at version {version}")
    return 0


def run_status(library: PromptLibrary, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Print the version status as JSON; exit 1 when an upgrade is pending."""
    del args
    try:
        status = library.check_version()
    except StoreError as exc:
        print_and_log(logger, logging.ERROR, f"Unable to read database version: {exc}")
        return EXIT_IO_FAILED
    print(json.dumps(status.to_payload(), indent=2))
    return EXIT_UPGRADE_PENDING if status.needs_upgrade else 0


def run_upgrade(library: PromptLibrary, args: argparse.Namespace, logger: logging.Logger) -> int:
    result = library.trigger_upgrade(force=bool(getattr(args, "force", False)))
    if not result.success:
        print_and_log(logger, logging.ERROR, f"Upgrade failed: {result.error}")
        return EXIT_UPGRADE_FAILED
    print_and_log(logger, logging.INFO, result.message or "Upgrade complete")
    if result.backup_path is not None:
        print(f"Backup written to {result.backup_path}")
    return 0


def run_import(library: PromptLibrary, args: argparse.Namespace, logger: logging.Logger) -> int:
    path = Path(args.path).expanduser()
    try:
        summary = library.import_file(path, include_responses=not args.no_responses)
    except ImportFormatError as exc:
        print_and_log(logger, logging.ERROR, str(exc))
        return EXIT_IMPORT_INVALID
    if not summary.success:
        print_and_log(logger, logging.ERROR, summary.error or "Import failed")
        return EXIT_IO_FAILED
    message = (
        f"Imported {summary.imported_count} of {summary.total_count} prompt(s) "
        f"({summary.duplicate_count} duplicate), "
        f"{summary.categories.imported} categor(ies), {summary.responses.imported} response(s)"
    )
    print_and_log(logger, logging.INFO, message)
    return 0


def run_export(library: PromptLibrary, args: argparse.Namespace, logger: logging.Logger) -> int:
    include_responses = False if args.no_responses else None
    try:
        resolved = library.export_to(Path(args.path), include_responses=include_responses)
    except (OSError, StoreError) as exc:
        print_and_log(logger, logging.ERROR, f"Failed to export library: {exc}")
        return EXIT_IO_FAILED
    print_and_log(logger, logging.INFO, f"Library exported to {resolved}")
    return 0


def run_stats(library: PromptLibrary, args: argparse.Namespace, logger: logging.Logger) -> int:
    del args
    try:
        stats = library.store.get_db_stats()
    except StoreError as exc:
        print_and_log(logger, logging.ERROR, f"Unable to collect statistics: {exc}")
        return EXIT_IO_FAILED
    print(f"Schema version: {stats.version or 'not recorded'}")
    print(
        f"Prompts: {stats.prompts} ({stats.user_prompts} user, {stats.core_prompts} core)"
    )
    print(f"Categories: {stats.categories}  Tags: {stats.tags}  Responses: {stats.responses}")
    print(f"Favourites: {stats.favorites}  Recently used: {stats.recently_used}")
    print(f"Settings: {stats.settings}  Size: {format_bytes(stats.db_size_bytes)}")
    return 0


def run_backups(library: PromptLibrary, args: argparse.Namespace, logger: logging.Logger) -> int:
    del args
    backups = library.backup_manager.list_backups()
    if not backups:
        print_and_log(logger, logging.INFO, "No backups found")
        return 0
    for path in backups:
        print(f"{path}  {format_bytes(path.stat().st_size)}")
    return 0


COMMAND_SPECS: dict[str | None, CommandSpec] = {
    None: CommandSpec(run_init, requires_initialized=False),
    "init": CommandSpec(run_init, requires_initialized=False),
    "status": CommandSpec(run_status, requires_initialized=False),
    "upgrade": CommandSpec(run_upgrade, requires_initialized=False),
    "import": CommandSpec(run_import),
    "export": CommandSpec(run_export),
    "stats": CommandSpec(run_stats),
    "backups": CommandSpec(run_backups, requires_initialized=False),
}


__all__ = ["COMMAND_SPECS", "CommandSpec"]
