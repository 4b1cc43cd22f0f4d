"""Tests for merge import and library export.

Updates:
  v0.3.0 - 2026-10-17 - Cover re-importing responses that carry no timestamp.
  v0.2.0 - 2026-10-08 - Cover the parent lookup policy for imported responses.
  v0.1.0 - 2026-09-21 - Cover duplicate detection, id remapping, and structural validation.
"""

from __future__ import annotations

import itertools
import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest

from conftest import make_prompt, make_response
from core.exceptions import ImportFormatError, StoreError
from core.importer import (
    EXPORT_TYPE,
    LibraryImporter,
    build_export_payload,
    export_library,
    import_library_file,
    load_export_file,
    merge_import,
)
from core.store import RecordStore
from models.category_model import Category

if TYPE_CHECKING:
    from pathlib import Path

    from pytest import MonkeyPatch


@dataclass
class _Item:
    id: str
    name: str


def _counter_ids() -> Any:
    counter = itertools.count(1)
    return lambda prefix: f"{prefix}_{next(counter)}"


def _export(**sections: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"type": EXPORT_TYPE, "version": "2.0", "prompts": []}
    payload.update(sections)
    return payload


def _prompt_entry(prompt_id: str, title: str, text: str, **extra: Any) -> dict[str, Any]:
    entry = {"id": prompt_id, "title": title, "promptText": text}
    entry.update(extra)
    return entry


@pytest.fixture
def importer(store: RecordStore) -> LibraryImporter:
    return LibraryImporter(store, id_factory=_counter_ids())


def test_merge_import_skips_existing_and_in_batch_duplicates() -> None:
    fresh_ids = iter(["n1", "n2"])
    outcome = merge_import(
        [_Item("a", "Alpha"), _Item("b", "beta"), _Item("c", "Gamma"), _Item("d", "gamma")],
        [_Item("x", "BETA")],
        lambda item: (item.name.lower(),),
        lambda: next(fresh_ids),
    )

    assert [item.id for item in outcome.new_items] == ["n1", "n2"]
    assert [item.id for item in outcome.duplicates] == ["b", "d"]
    assert outcome.id_map == {"a": "n1", "b": "x", "c": "n2", "d": "n2"}
    assert (outcome.imported_count, outcome.duplicate_count, outcome.total_count) == (2, 2, 4)


def test_weather_update_already_stored_is_a_duplicate(
    store: RecordStore, importer: LibraryImporter
) -> None:
    store.add_prompts(
        [make_prompt("stored", title="Weather Update", prompt_text="Tell me the weather")]
    )

    summary = importer.import_payload(
        _export(prompts=[_prompt_entry("other-id", "Weather Update", "Tell me the weather")])
    )

    assert summary.success is True
    assert summary.duplicate_count == 1
    assert summary.imported_count == 0
    assert [prompt.id for prompt in store.list_prompts()] == ["stored"]


def test_prompt_duplicate_key_ignores_case(store: RecordStore, importer: LibraryImporter) -> None:
    store.add_prompts([make_prompt("stored", title="Weather Update", prompt_text="Tell me")])

    summary = importer.import_payload(
        _export(prompts=[_prompt_entry("x", "WEATHER update", "tell ME")])
    )

    assert summary.duplicate_count == 1


def test_second_import_of_same_file_adds_nothing(
    store: RecordStore, importer: LibraryImporter, tmp_path: Path
) -> None:
    source = tmp_path / "export.json"
    source.write_text(
        json.dumps(
            _export(
                prompts=[
                    _prompt_entry("p1", "One", "First prompt"),
                    _prompt_entry("p2", "Two", "Second prompt"),
                ]
            )
        ),
        encoding="utf-8",
    )

    first = importer.import_file(source)
    second = importer.import_file(source)

    assert first.imported_count == 2
    assert second.imported_count == 0
    assert second.duplicate_count == second.total_count == 2
    assert len(store.list_prompts()) == 2


def test_imported_items_get_fresh_ids_and_remapped_references(
    store: RecordStore, importer: LibraryImporter
) -> None:
    summary = importer.import_payload(
        _export(
            categories=[{"id": "jazz-src", "name": "Jazz", "isUserCreated": False}],
            prompts=[
                _prompt_entry(
                    "p-src",
                    "Jazz Intro",
                    "Introduce {{song}}",
                    category="jazz-src",
                    tags=["jazz"],
                    isUserCreated=False,
                )
            ],
            responses=[
                make_response("r-src", "p-src").to_payload(),
            ],
        )
    )

    assert summary.success is True
    assert (summary.categories.imported, summary.responses.imported) == (1, 1)
    category = store.list_categories()[0]
    assert category.id == "user_cat_1"
    assert category.is_user_created is True
    prompt = store.list_prompts()[0]
    assert prompt.id == "user_2"
    assert prompt.category_id == "user_cat_1"
    assert prompt.is_user_created is True
    assert prompt.tags == ["jazz"]
    response = store.list_responses()[0]
    assert (response.id, response.prompt_id) == ("response_3", "user_2")


def test_category_matched_by_name_reuses_stored_id(
    store: RecordStore, importer: LibraryImporter
) -> None:
    store.add_categories([Category("weather", "Weather", is_user_created=False)])

    summary = importer.import_payload(
        _export(
            categories=[{"id": "wx", "name": "WEATHER"}],
            prompts=[_prompt_entry("p1", "Forecast", "Read the forecast", category="wx")],
        )
    )

    assert summary.categories.duplicates == 1
    assert store.list_prompts()[0].category_id == "weather"


def test_duplicate_prompt_within_one_file_is_imported_once(importer: LibraryImporter) -> None:
    summary = importer.import_payload(
        _export(
            prompts=[
                _prompt_entry("a", "Same", "Same text"),
                _prompt_entry("b", "same", "same TEXT"),
            ]
        )
    )

    assert (summary.imported_count, summary.duplicate_count, summary.total_count) == (1, 1, 2)


def test_invalid_entries_are_counted_not_raised(importer: LibraryImporter) -> None:
    entries = [{"id": "no-title", "promptText": "x"}, "junk", _prompt_entry("ok", "T", "x")]

    summary = importer.import_payload(_export(prompts=entries))

    assert summary.success is True
    assert summary.prompts.invalid == 2
    assert summary.total_count == 3
    assert summary.imported_count == 1


def test_responses_follow_their_parent_prompt(
    store: RecordStore, importer: LibraryImporter
) -> None:
    store.add_prompts([make_prompt("kept")])

    summary = importer.import_payload(
        _export(
            prompts=[],
            responses=[
                make_response("r-known", "kept").to_payload(),
                make_response("r-orphan", "nowhere").to_payload(),
            ],
        )
    )

    assert summary.responses.imported == 1
    assert summary.responses.orphaned == 1
    assert [response.prompt_id for response in store.list_responses()] == ["kept"]


def test_duplicate_response_content_is_skipped(
    store: RecordStore, importer: LibraryImporter
) -> None:
    store.add_prompts([make_prompt("kept")])
    store.add_responses([make_response("stored", "kept")])

    summary = importer.import_payload(
        _export(
            responses=[
                make_response("other-id", "kept", response_text="Response stored").to_payload()
            ]
        )
    )

    assert summary.responses.duplicates == 1
    assert len(store.list_responses()) == 1


def test_undated_responses_are_not_duplicated_on_reimport(
    store: RecordStore, importer: LibraryImporter
) -> None:
    payload = _export(
        prompts=[_prompt_entry("p1", "Jazz Intro", "Introduce {{song}}")],
        responses=[
            {"id": "r1", "promptId": "p1", "responseText": "Tonight's first track"},
            {"id": "r2", "promptId": "p1", "responseText": "Tonight's first track"},
        ],
    )

    first = importer.import_payload(payload)
    second = importer.import_payload(payload)

    assert (first.responses.imported, first.responses.duplicates) == (1, 1)
    assert (second.responses.imported, second.responses.duplicates) == (0, 2)
    assert len(store.list_responses()) == 1


def test_dated_response_with_same_text_is_still_new(
    store: RecordStore, importer: LibraryImporter
) -> None:
    store.add_prompts([make_prompt("kept")])
    store.add_responses([make_response("stored", "kept")])

    summary = importer.import_payload(
        _export(
            responses=[
                make_response(
                    "later",
                    "kept",
                    response_text="Response stored",
                    created_at=datetime(2026, 3, 1, tzinfo=UTC),
                ).to_payload()
            ]
        )
    )

    assert summary.responses.imported == 1
    assert len(store.list_responses()) == 2


def test_responses_can_be_left_out(store: RecordStore, importer: LibraryImporter) -> None:
    store.add_prompts([make_prompt("kept")])

    summary = importer.import_payload(
        _export(responses=[make_response("r1", "kept").to_payload()]), include_responses=False
    )

    assert summary.responses.total == 0
    assert store.list_responses() == []


@pytest.mark.parametrize(("assume_exists", "imported"), [(True, 1), (False, 0)])
def test_parent_lookup_failure_follows_policy(
    store: RecordStore, monkeypatch: MonkeyPatch, assume_exists: bool, imported: int
) -> None:
    store.add_prompts([make_prompt("kept")])

    def failing_lookup(prompt_id: str) -> bool:
        raise StoreError(f"lookup of {prompt_id} timed out")

    monkeypatch.setattr(store, "prompt_exists", failing_lookup)
    importer = LibraryImporter(store, assume_prompt_exists_on_lookup_error=assume_exists)

    payload = _export(responses=[make_response("r1", "kept").to_payload()])

    summary = importer.import_payload(payload)

    assert summary.responses.imported == imported
    assert summary.responses.orphaned == 1 - imported


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"prompts": []},
        {"type": "SomethingElse", "prompts": []},
        {"type": EXPORT_TYPE, "prompts": {"id": "p1"}},
        {"type": EXPORT_TYPE, "prompts": [], "categories": "nope"},
    ],
)
def test_structural_errors_reject_before_any_write(store: RecordStore, payload: Any) -> None:
    with pytest.raises(ImportFormatError):
        LibraryImporter(store).import_payload(payload)

    assert store.list_prompts() == []
    assert store.list_categories() == []


def test_load_export_file_rejects_invalid_json(tmp_path: Path) -> None:
    source = tmp_path / "broken.json"
    source.write_text("{not json", encoding="utf-8")

    with pytest.raises(ImportFormatError, match="Invalid JSON"):
        load_export_file(source)
    with pytest.raises(ImportFormatError, match="Cannot read"):
        load_export_file(tmp_path / "missing.json")


def test_export_contains_user_collections_only(store: RecordStore) -> None:
    store.add_categories([Category("mine", "Mine"), Category("weather", "Weather", False)])
    store.add_prompts([make_prompt("user1"), make_prompt("core1", is_user_created=False)])
    store.add_responses([make_response("r1", "core1")])

    payload = build_export_payload(store)

    assert payload["type"] == EXPORT_TYPE
    assert [entry["id"] for entry in payload["prompts"]] == ["user1"]
    assert [entry["id"] for entry in payload["categories"]] == ["mine"]
    assert [entry["id"] for entry in payload["responses"]] == ["r1"]
    assert "responses" not in build_export_payload(store, include_responses=False)


def test_exported_file_imports_into_empty_store(store: RecordStore, tmp_path: Path) -> None:
    store.add_categories([Category("mine", "Mine")])
    store.add_prompts([make_prompt("user1", category_id="mine", tags=["a"])])
    store.add_responses([make_response("r1", "user1")])
    exported = export_library(store, tmp_path / "out" / "library.json")

    target = RecordStore(tmp_path / "other.db")
    summary = import_library_file(target, exported)

    assert summary.to_payload() == {
        "success": True,
        "importedCount": 1,
        "duplicateCount": 0,
        "totalCount": 1,
        "importedCategories": 1,
        "importedResponses": 1,
    }
    prompt = target.list_prompts()[0]
    assert prompt.title == "Title user1"
    assert prompt.tags == ["a"]
    assert target.list_categories()[0].name == "Mine"
