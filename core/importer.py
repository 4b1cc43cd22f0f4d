"""Import and export prompt library files without creating duplicates.

Imports are append-only: incoming items that match something already stored
(or something earlier in the same file) are counted as duplicates and skipped,
everything else is inserted under a freshly generated id. Existing rows are
never modified.

Updates:
  v0.3.1 - 2026-10-17 - Match undated responses on prompt and text so re-imports skip them.
  v0.3.0 - 2026-10-08 - Keep responses whose parent lookup fails when the policy allows it.
  v0.2.0 - 2026-10-03 - Remap category and prompt ids across an import.
  v0.1.0 - 2026-09-21 - Pure merge helper plus DJPromptsExport reader and writer.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar, cast

from models.category_model import Category
from models.prompt_model import Prompt, PromptResponse, new_record_id

from .exceptions import ImportFormatError, StoreError

if TYPE_CHECKING:
    from .store import RecordStore

logger = logging.getLogger("prompt_library.importer")

EXPORT_TYPE = "DJPromptsExport"
EXPORT_VERSION = "2.0"

ExportPayload = dict[str, Any]


class _Identified(Protocol):
    id: str


ItemT = TypeVar("ItemT", bound=_Identified)


@dataclass(slots=True)
class MergeOutcome(Generic[ItemT]):
    """Result of :func:`merge_import`.

    ``id_map`` maps every incoming id to the id it resolves to: the stored
    duplicate for skipped items, the fresh id for new ones.
    """

    new_items: list[ItemT] = field(default_factory=list)
    duplicates: list[ItemT] = field(default_factory=list)
    id_map: dict[str, str] = field(default_factory=dict)

    @property
    def imported_count(self) -> int:
        return len(self.new_items)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)

    @property
    def total_count(self) -> int:
        return self.imported_count + self.duplicate_count


def merge_import(
    incoming: Iterable[ItemT],
    existing: Iterable[ItemT],
    key_fn: Callable[[ItemT], Iterable[Hashable]],
    id_factory: Callable[[], str],
    *,
    index_key_fn: Callable[[ItemT], Iterable[Hashable]] | None = None,
) -> MergeOutcome[ItemT]:
    """Split ``incoming`` into new items (re-identified) and duplicates.

    ``key_fn`` returns the keys an incoming item is looked up by; an incoming
    item is a duplicate when any of them was seen among ``existing`` or among the
    incoming items accepted before it. ``index_key_fn`` (default ``key_fn``)
    returns the keys a stored or accepted item is indexed under.
    """
    index_key_fn = index_key_fn or key_fn
    index: dict[Hashable, str] = {}
    for item in existing:
        for key in index_key_fn(item):
            index.setdefault(key, item.id)

    outcome: MergeOutcome[ItemT] = MergeOutcome()
    for item in incoming:
        keys = list(key_fn(item))
        match = next((index[key] for key in keys if key in index), None)
        if match is not None:
            outcome.duplicates.append(item)
            outcome.id_map.setdefault(item.id, match)
            continue
        fresh = cast("ItemT", replace(cast("Any", item), id=id_factory()))
        outcome.new_items.append(fresh)
        outcome.id_map[item.id] = fresh.id
        for key in (*keys, *index_key_fn(fresh)):
            index.setdefault(key, fresh.id)
    return outcome


def prompt_keys(prompt: Prompt) -> tuple[Hashable, ...]:
    return ((prompt.title.lower(), prompt.prompt_text.lower()),)


def category_keys(category: Category) -> tuple[Hashable, ...]:
    return (("id", category.id), ("name", category.name.lower()))


def response_keys(response: PromptResponse) -> tuple[Hashable, ...]:
    return (("id", response.id), ("content", *response.content_key()))


def undated_response_keys(response: PromptResponse) -> tuple[Hashable, ...]:
    """Keys for an incoming response whose file entry carried no ``createdAt``."""
    return (("id", response.id), ("text", response.prompt_id, response.response_text))


def stored_response_keys(response: PromptResponse) -> tuple[Hashable, ...]:
    return (*response_keys(response), ("text", response.prompt_id, response.response_text))


@dataclass(slots=True)
class ImportCounts:
    """Per-kind import counters."""

    total: int = 0
    imported: int = 0
    duplicates: int = 0
    invalid: int = 0
    orphaned: int = 0

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "imported": self.imported,
            "duplicates": self.duplicates,
            "invalid": self.invalid,
            "orphaned": self.orphaned,
        }


@dataclass(slots=True)
class ImportSummary:
    """Aggregate outcome of importing one export file."""

    prompts: ImportCounts = field(default_factory=ImportCounts)
    categories: ImportCounts = field(default_factory=ImportCounts)
    responses: ImportCounts = field(default_factory=ImportCounts)
    success: bool = True
    error: str | None = None

    @property
    def imported_count(self) -> int:
        return self.prompts.imported

    @property
    def duplicate_count(self) -> int:
        return self.prompts.duplicates

    @property
    def total_count(self) -> int:
        return self.prompts.total

    def summary(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "prompts": self.prompts.summary(),
            "categories": self.categories.summary(),
            "responses": self.responses.summary(),
        }

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "importedCount": self.imported_count,
            "duplicateCount": self.duplicate_count,
            "totalCount": self.total_count,
            "importedCategories": self.categories.imported,
            "importedResponses": self.responses.imported,
        }
        if self.error:
            payload["error"] = self.error
        return payload


def validate_export_payload(payload: object) -> ExportPayload:
    """Reject files that are not library exports before anything is merged."""
    if not isinstance(payload, dict):
        raise ImportFormatError("Import file must contain a JSON object")
    data = cast("ExportPayload", payload)
    if data.get("type") != EXPORT_TYPE:
        raise ImportFormatError(f"Invalid file format. Expected a {EXPORT_TYPE} file.")
    if not isinstance(data.get("prompts"), list):
        raise ImportFormatError("Invalid file format. 'prompts' must be a list.")
    for optional in ("categories", "responses"):
        if optional in data and data[optional] is not None and not isinstance(data[optional], list):
            raise ImportFormatError(f"Invalid file format. '{optional}' must be a list.")
    return data


def load_export_file(path: Path) -> ExportPayload:
    """Read and validate an export file."""
    try:
        contents = path.expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        raise ImportFormatError(f"Cannot read import file: {path}") from exc
    try:
        payload: object = json.loads(contents)
    except json.JSONDecodeError as exc:
        raise ImportFormatError(f"Invalid JSON in {path}") from exc
    return validate_export_payload(payload)


T = TypeVar("T")


def _parse_items(
    raw_items: Sequence[object] | None,
    parser: Callable[[Mapping[str, Any]], T],
    kind: str,
    counts: ImportCounts,
) -> list[T]:
    items: list[T] = []
    for index, raw in enumerate(raw_items or []):
        counts.total += 1
        try:
            if not isinstance(raw, Mapping):
                raise TypeError("entry is not a JSON object")
            items.append(parser(cast("Mapping[str, Any]", raw)))
        except (KeyError, TypeError, ValueError) as exc:
            counts.invalid += 1
            logger.warning("Skipping invalid %s entry #%d: %s", kind, index, exc)
    return items


class LibraryImporter:
    """Merge export files into a record store."""

    def __init__(
        self,
        store: RecordStore,
        *,
        assume_prompt_exists_on_lookup_error: bool = True,
        id_factory: Callable[[str], str] = new_record_id,
    ) -> None:
        self._store = store
        self._assume_exists = assume_prompt_exists_on_lookup_error
        self._id_factory = id_factory

    def import_file(self, path: Path, *, include_responses: bool = True) -> ImportSummary:
        """Import an export file from disk."""
        return self.import_payload(load_export_file(path), include_responses=include_responses)

    def import_payload(
        self, payload: Mapping[str, Any], *, include_responses: bool = True
    ) -> ImportSummary:
        """Import an already-decoded export payload.

        Raises:
            ImportFormatError: when the payload is not a library export.
        """
        data = validate_export_payload(dict(payload) if isinstance(payload, Mapping) else payload)
        summary = ImportSummary()
        try:
            category_map = self._import_categories(data.get("categories"), summary.categories)
            prompt_map = self._import_prompts(data["prompts"], category_map, summary.prompts)
            if include_responses:
                self._import_responses(data.get("responses"), prompt_map, summary.responses)
        except (StoreError, sqlite3.Error) as exc:
            summary.success = False
            summary.error = f"Import failed: {exc}"
            logger.error(summary.error)
            return summary

        logger.info(
            "Imported %d of %d prompt(s) (%d duplicate), %d categor(ies), %d response(s)",
            summary.prompts.imported,
            summary.prompts.total,
            summary.prompts.duplicates,
            summary.categories.imported,
            summary.responses.imported,
        )
        return summary

    def _import_categories(
        self, raw_items: Sequence[object] | None, counts: ImportCounts
    ) -> dict[str, str]:
        incoming = [
            replace(category, is_user_created=True)
            for category in _parse_items(raw_items, Category.from_payload, "category", counts)
        ]
        outcome = merge_import(
            incoming,
            self._store.list_categories(),
            category_keys,
            lambda: self._id_factory("user_cat"),
        )
        added, _ = self._store.add_categories(outcome.new_items)
        counts.imported = added
        counts.duplicates = outcome.duplicate_count
        return outcome.id_map

    def _import_prompts(
        self,
        raw_items: Sequence[object],
        category_map: Mapping[str, str],
        counts: ImportCounts,
    ) -> dict[str, str]:
        parsed = _parse_items(raw_items, Prompt.from_payload, "prompt", counts)
        incoming = [
            replace(
                prompt,
                is_user_created=True,
                category_id=category_map.get(prompt.category_id or "", prompt.category_id),
            )
            for prompt in parsed
        ]
        outcome = merge_import(
            incoming,
            self._store.list_prompts(),
            prompt_keys,
            lambda: self._id_factory("user"),
        )
        for duplicate in outcome.duplicates:
            logger.info("Skipping duplicate prompt '%s'", duplicate.title)
        added, _ = self._store.add_prompts(outcome.new_items)
        counts.imported = added
        counts.duplicates = outcome.duplicate_count
        return outcome.id_map

    def _import_responses(
        self,
        raw_items: Sequence[object] | None,
        prompt_map: Mapping[str, str],
        counts: ImportCounts,
    ) -> None:
        undated: set[str] = set()

        def parse(entry: Mapping[str, Any]) -> PromptResponse:
            response = PromptResponse.from_payload(entry)
            if not entry.get("createdAt"):
                # The parsed timestamp is "now"; it cannot identify a re-import.
                undated.add(response.id)
            return response

        parsed = _parse_items(raw_items, parse, "response", counts)
        incoming: list[PromptResponse] = []
        for response in parsed:
            prompt_id = prompt_map.get(response.prompt_id)
            if prompt_id is None:
                if not self._parent_exists(response.prompt_id):
                    logger.warning(
                        "Skipping response %s: prompt %s does not exist",
                        response.id,
                        response.prompt_id,
                    )
                    counts.orphaned += 1
                    continue
                prompt_id = response.prompt_id
            incoming.append(replace(response, prompt_id=prompt_id, user_id=None))

        outcome = merge_import(
            incoming,
            self._store.list_responses(),
            lambda response: (
                undated_response_keys(response)
                if response.id in undated
                else response_keys(response)
            ),
            lambda: self._id_factory("response"),
            index_key_fn=stored_response_keys,
        )
        added, _ = self._store.add_responses(outcome.new_items)
        counts.imported = added
        counts.duplicates = outcome.duplicate_count

    def _parent_exists(self, prompt_id: str) -> bool:
        try:
            return self._store.prompt_exists(prompt_id)
        except StoreError as exc:
            if not self._assume_exists:
                logger.warning("Could not verify prompt %s (%s); dropping response", prompt_id, exc)
                return False
            logger.warning("Could not verify prompt %s (%s); assuming it exists", prompt_id, exc)
            return True


def import_library_file(
    store: RecordStore,
    source: Path | str | Mapping[str, Any],
    *,
    include_responses: bool = True,
    assume_prompt_exists_on_lookup_error: bool = True,
) -> ImportSummary:
    """Import an export file path or decoded payload into ``store``."""
    importer = LibraryImporter(
        store, assume_prompt_exists_on_lookup_error=assume_prompt_exists_on_lookup_error
    )
    if isinstance(source, Mapping):
        return importer.import_payload(source, include_responses=include_responses)
    return importer.import_file(Path(source), include_responses=include_responses)


def build_export_payload(store: RecordStore, *, include_responses: bool = True) -> ExportPayload:
    """Return a DJPromptsExport payload of user prompts, user categories, and responses."""
    payload: ExportPayload = {
        "type": EXPORT_TYPE,
        "version": EXPORT_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "prompts": [prompt.to_payload() for prompt in store.list_prompts(is_user_created=True)],
        "categories": [
            category.to_payload() for category in store.list_categories(is_user_created=True)
        ],
    }
    if include_responses:
        payload["responses"] = [response.to_payload() for response in store.list_responses()]
    return payload


def export_library(
    store: RecordStore, output_path: Path, *, include_responses: bool = True
) -> Path:
    """Write an export file and return its resolved path."""
    payload = build_export_payload(store, include_responses=include_responses)
    resolved_path = output_path.expanduser()
    resolved_path.parent.mkdir(parents=True, exist_ok=True)
    resolved_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info(
        "Exported %d prompt(s) and %d categor(ies) to %s",
        len(payload["prompts"]),
        len(payload["categories"]),
        resolved_path,
    )
    return resolved_path


__all__ = [
    "EXPORT_TYPE",
    "EXPORT_VERSION",
    "ImportCounts",
    "ImportSummary",
    "LibraryImporter",
    "MergeOutcome",
    "build_export_payload",
    "category_keys",
    "export_library",
    "import_library_file",
    "load_export_file",
    "merge_import",
    "prompt_keys",
    "response_keys",
    "stored_response_keys",
    "undated_response_keys",
    "validate_export_payload",
]
