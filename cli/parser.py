"""Argument parser for the prompt library maintenance CLI.

Updates:
  v0.2.0 - 2026-10-10 - Add import, export, stats, and backup listing commands.
  v0.1.0 - 2026-09-30 - Initial init/status/upgrade commands.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser used by :func:`parse_args`."""
    parser = argparse.ArgumentParser(description="Prompt library database maintenance")
    parser.add_argument(
        "--logging-config",
        type=Path,
        default=None,
        help="Path to logging configuration file (INI format)",
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        default=None,
        help="SQLite database path (overrides PROMPT_LIBRARY_DB_PATH).",
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser(
        "init",
        help="Create or upgrade the database so it is ready to serve (default command).",
    )
    subparsers.add_parser(
        "status",
        help="Show the recorded schema version and whether an upgrade is pending.",
    )

    upgrade_parser = subparsers.add_parser(
        "upgrade",
        help="Upgrade the database to the configured target version.",
    )
    upgrade_parser.add_argument(
        "--force",
        action="store_true",
        help="Re-run every upgrade step even when the database is already current.",
    )

    import_parser = subparsers.add_parser(
        "import",
        help="Merge a DJPromptsExport JSON file into the library, skipping duplicates.",
    )
    import_parser.add_argument("path", type=Path, help="Export file to import.")
    import_parser.add_argument(
        "--no-responses",
        action="store_true",
        help="Ignore saved responses contained in the file.",
    )

    export_parser = subparsers.add_parser(
        "export",
        help="Write user prompts, user categories, and responses to a JSON file.",
    )
    export_parser.add_argument("path", type=Path, help="Destination file path (.json).")
    export_parser.add_argument(
        "--no-responses",
        action="store_true",
        help="Leave saved responses out of the export.",
    )

    subparsers.add_parser("stats", help="Print row counts and database size.")
    subparsers.add_parser("backups", help="List pre-upgrade backups, newest last.")

    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Return parsed CLI arguments."""
    return build_parser().parse_args(argv)


__all__ = ["build_parser", "parse_args"]
