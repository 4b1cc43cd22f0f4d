"""Pytest configuration for shared test fixtures and environment hooks.

Updates:
  v0.2.0 - 2026-10-12 - Share store, settings, and prompt builders across suites.
  v0.1.0 - 2026-09-26 - Isolate tests from ambient prompt library environment variables.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest

from config import PromptLibrarySettings, load_settings
from core.store import RecordStore
from models.prompt_model import Prompt, PromptResponse

if TYPE_CHECKING:
    from pathlib import Path

    from pytest import MonkeyPatch

_LEGACY_ENV = ("DATABASE_URL", "DATABASE_PATH", "DATABASE_INIT_VERSION", "DATABASE_TARGET_VERSION")


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    """Run every test in an empty directory with no prompt library env vars."""
    for key in list(os.environ):
        if key.upper().startswith("PROMPT_LIBRARY_") or key.upper() in _LEGACY_ENV:
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "library.db"


@pytest.fixture
def store(db_path: Path) -> RecordStore:
    return RecordStore(db_path)


@pytest.fixture
def settings(db_path: Path) -> PromptLibrarySettings:
    return load_settings(db_path=db_path, backup_dir=db_path.parent / "backups")


def make_prompt(prompt_id: str, **overrides: Any) -> Prompt:
    values: dict[str, Any] = {
        "title": f"Title {prompt_id}",
        "prompt_text": f"Prompt text for {prompt_id}",
        "created_at": datetime(2026, 1, 1, tzinfo=UTC),
    }
    values.update(overrides)
    return Prompt(id=prompt_id, **values)


def make_response(response_id: str, prompt_id: str, **overrides: Any) -> PromptResponse:
    values: dict[str, Any] = {
        "response_text": f"Response {response_id}",
        "model_used": "gpt-4o-mini",
        "created_at": datetime(2026, 1, 2, tzinfo=UTC),
    }
    values.update(overrides)
    return PromptResponse(id=response_id, prompt_id=prompt_id, **values)
