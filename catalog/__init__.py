"""Packaged default library content seeded into a fresh store.

Updates:
  v0.2.0 - 2026-10-04 - Ship the core prompts seeded on first boot.
  v0.1.0 - 2026-09-27 - Provide packaged default prompt catalogue.
"""

from __future__ import annotations

from importlib.resources import files
from typing import Any


def builtin_catalog_resource() -> Any:
    """Return a Traversable pointing to the packaged prompts JSON file."""
    return files(__name__).joinpath("prompts.json")


__all__ = ["builtin_catalog_resource"]
