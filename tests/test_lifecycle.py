"""Tests for the startup hook and the PromptLibrary facade.

Updates:
  v0.2.0 - 2026-10-09 - Cover facade reconcile, append-only, and import helpers.
  v0.1.0 - 2026-09-29 - Cover fresh initialisation, idempotency, and refusal to start.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from conftest import make_prompt, make_response
from config import PromptLibrarySettings, load_settings
from core.importer import EXPORT_TYPE
from core.lifecycle import (
    DEFAULT_SETTINGS,
    PromptLibrary,
    initialize_database,
    load_default_prompts,
)
from core.store import RecordStore, table_exists
from models.category_model import DEFAULT_CATEGORIES

if TYPE_CHECKING:
    from pathlib import Path

    from pytest import LogCaptureFixture


def _backups(settings: PromptLibrarySettings) -> list[Path]:
    assert settings.backup_dir is not None
    if not settings.backup_dir.exists():
        return []
    return sorted(settings.backup_dir.iterdir())


def test_default_catalog_prompts_are_core_and_categorised() -> None:
    prompts = load_default_prompts()
    category_ids = {category.id for category in DEFAULT_CATEGORIES}

    assert prompts
    assert all(prompt.is_user_created is False for prompt in prompts)
    assert all(prompt.category_id in category_ids for prompt in prompts)
    assert any(prompt.title == "Weather Update" for prompt in prompts)


def test_fresh_store_is_seeded_and_upgraded(
    store: RecordStore, settings: PromptLibrarySettings
) -> None:
    assert initialize_database(store, settings) is True

    stats = store.get_db_stats()
    assert stats.version == "2.1.0"
    assert stats.categories == len(DEFAULT_CATEGORIES)
    assert stats.core_prompts == len(load_default_prompts())
    assert stats.user_prompts == 0
    assert store.get_settings() == DEFAULT_SETTINGS
    assert len(_backups(settings)) == 1
    with store.read() as conn:
        assert table_exists(conn, "User")


def test_second_initialisation_writes_nothing(
    store: RecordStore, settings: PromptLibrarySettings
) -> None:
    assert initialize_database(store, settings) is True
    info = store.get_database_info()
    stats = replace(store.get_db_stats(), db_size_bytes=0)

    assert initialize_database(store, settings) is True

    assert store.get_database_info() == info
    assert replace(store.get_db_stats(), db_size_bytes=0) == stats
    assert len(_backups(settings)) == 1


def test_seeding_can_be_disabled(db_path: Path) -> None:
    settings = load_settings(db_path=db_path, seed_defaults=False)
    store = RecordStore(db_path)

    assert initialize_database(store, settings) is True

    stats = store.get_db_stats()
    assert (stats.prompts, stats.categories, stats.settings) == (0, 0, 0)
    assert stats.version == "2.1.0"


def test_existing_store_is_upgraded_with_data_intact(
    store: RecordStore, settings: PromptLibrarySettings
) -> None:
    with store.transaction() as conn:
        store.write_version(conn, "1.0.0")
    store.add_prompts([make_prompt("mine")])
    store.add_responses([make_response("r1", "mine")])

    assert initialize_database(store, settings) is True

    assert store.get_database_version() == "2.1.0"
    assert store.get_prompt("mine").title == "Title mine"
    assert store.list_responses()[0].user_id is None
    # Seeding only happens on a store without a recorded version.
    assert store.get_db_stats().categories == 0


def test_unreachable_target_refuses_to_start(
    db_path: Path, caplog: LogCaptureFixture
) -> None:
    settings = load_settings(db_path=db_path, target_version="9.0.0")
    store = RecordStore(db_path)

    with caplog.at_level(logging.CRITICAL, logger="prompt_library.lifecycle"):
        assert initialize_database(store, settings) is False

    assert "refusing to start" in caplog.text
    assert store.get_database_version() == "1.0.0"


def test_library_version_endpoints(settings: PromptLibrarySettings) -> None:
    library = PromptLibrary.from_settings(settings)

    status = library.check_version()
    assert status.to_payload()["upgradeType"] == "initialization"

    assert library.initialize() is True
    assert library.check_version().needs_upgrade is False

    result = library.trigger_upgrade()
    assert result.to_payload() == {
        "success": True,
        "message": "Database already at version 2.1.0",
    }
    assert library.trigger_upgrade(force=True).success is True


def test_library_reconcile_and_append_helpers(settings: PromptLibrarySettings) -> None:
    library = PromptLibrary.from_settings(settings)
    assert library.initialize() is True
    core_count = library.store.get_db_stats().core_prompts

    result = library.store_user_prompts([make_prompt("u1"), make_prompt("u2")])
    assert result.success is True
    assert library.store.get_db_stats().core_prompts == core_count

    added = library.add_user_prompts([make_prompt("u2"), make_prompt("u3", is_user_created=False)])
    assert added == {"success": True, "added": 1, "skipped": 1}
    assert library.store.get_prompt("u3").is_user_created is True

    assert library.add_user_prompts([{"id": "bad"}])["success"] is False
    assert library.add_user_categories([{"id": "mine", "name": "Mine"}])["added"] == 1
    assert library.add_responses([make_response("r1", "u1")]) == {
        "success": True,
        "added": 1,
        "skipped": 0,
    }

    assert library.store_favorites(["u1", "u3"]).count == 2
    assert library.store_recently_used(["u3", "u1"]).success is True
    assert library.store.list_recently_used() == ["u3", "u1"]
    assert library.store_user_categories([]).deleted == 1
    assert library.store_responses([]).deleted == 1
    assert library.store_core_prompts([]).retained == 0

    library.store.set_setting("theme", "dark")
    assert library.get_user_preferences() == {"fontSize": "medium", "theme": "dark"}


def test_library_import_matches_seeded_core_prompt(
    settings: PromptLibrarySettings, tmp_path: Path
) -> None:
    library = PromptLibrary.from_settings(settings)
    assert library.initialize() is True
    source = tmp_path / "import.json"
    source.write_text(
        json.dumps(
            {
                "type": EXPORT_TYPE,
                "version": "2.0",
                "prompts": [
                    {
                        "id": "their-id",
                        "title": "Weather Update",
                        "promptText": "Tell me the weather",
                    }
                ],
            }
        ),
        encoding="utf-8",
    )

    summary = library.import_file(source)

    assert (summary.duplicate_count, summary.imported_count) == (1, 0)


def test_library_export_respects_response_setting(db_path: Path, tmp_path: Path) -> None:
    settings = load_settings(db_path=db_path, export_include_responses=False)
    library = PromptLibrary.from_settings(settings)
    assert library.initialize() is True
    library.add_user_prompts([make_prompt("u1")])
    library.add_responses([make_response("r1", "u1")])

    without = json.loads(library.export_to(tmp_path / "a.json").read_text(encoding="utf-8"))
    with_responses = json.loads(
        library.export_to(tmp_path / "b.json", include_responses=True).read_text(encoding="utf-8")
    )

    assert "responses" not in without
    assert [entry["id"] for entry in with_responses["responses"]] == ["r1"]
