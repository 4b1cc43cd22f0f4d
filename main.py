"""Application entry point for prompt library maintenance.

Updates:
  v0.2.0 - 2026-10-10 - Dispatch import, export, stats, and backup commands.
  v0.1.0 - 2026-09-30 - Wire settings, logging, and the startup hook.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

from cli.commands import COMMAND_SPECS, EXIT_INIT_FAILED
from cli.parser import parse_args
from cli.runtime import setup_logging
from config import SettingsError, load_settings
from core import PromptLibrary, StoreError

if TYPE_CHECKING:
    from collections.abc import Sequence

EXIT_SETTINGS_FAILED = 2


def main(argv: Sequence[str] | None = None) -> int:
    """Entrypoint that wires settings, the library, and CLI commands."""
    args = parse_args(argv)
    setup_logging(args.logging_config)

    logger = logging.getLogger("prompt_library.main")
    overrides = {"db_path": args.db_path} if args.db_path is not None else {}
    try:
        settings = load_settings(**overrides)
    except SettingsError as exc:
        logger.error("Failed to load settings: %s", exc)
        return EXIT_SETTINGS_FAILED

    try:
        library = PromptLibrary.from_settings(settings)
    except StoreError as exc:
        logger.error("Failed to open database %s: %s", settings.db_path, exc)
        return EXIT_INIT_FAILED

    spec = COMMAND_SPECS[getattr(args, "command", None)]
    if spec.requires_initialized and not library.initialize():
        logger.error("Database is not ready; refusing to run %s", args.command)
        return EXIT_INIT_FAILED
    return spec.handler(library, args, logger)


if __name__ == "__main__":
    sys.exit(main())
