"""Reconcile "replace this whole collection" payloads against stored rows.

A reconcile call runs inside one ``BEGIN IMMEDIATE`` transaction:

1. load the stored items in scope together with their dependent-row counts,
2. delete stored items missing from the payload unless something depends on them,
3. update matching items in place and insert new ones under the caller's id,
4. relink tags for prompts that carry a tag list.

Any failure rolls the whole call back and is reported through
:class:`ReconcileResult` rather than raised.

Updates:
  v0.3.1 - 2026-10-17 - Require a user/core scope for prompts and categories; lock per kind.
  v0.3.0 - 2026-10-07 - Serialise concurrent calls per scope with an in-process lock.
  v0.2.0 - 2026-10-01 - Add favourite, recently-used, and response adapters.
  v0.1.0 - 2026-09-26 - Generic reconciler with prompt and category adapters.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from models.category_model import Category
from models.prompt_model import Prompt, PromptResponse, RecentlyUsedEntry

from .exceptions import StoreError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from .store import RecordStore

logger = logging.getLogger("prompt_library.reconciler")

ItemT = TypeVar("ItemT")


class CollectionKind(str, Enum):
    """Collections that support replace-all reconciliation."""

    PROMPTS = "prompts"
    CATEGORIES = "categories"
    RESPONSES = "responses"
    FAVORITES = "favorites"
    RECENTLY_USED = "recently_used"


@dataclass(slots=True, frozen=True)
class ReconcileScope:
    """Subset of a collection a reconcile call owns.

    ``is_user_created`` splits prompts and categories into user and core sets and
    must be set when reconciling either of them;
    ``user_id`` routes favourites and recently-used entries to per-user tables.
    """

    is_user_created: bool | None = None
    user_id: str | None = None


USER_SCOPE = ReconcileScope(is_user_created=True)
CORE_SCOPE = ReconcileScope(is_user_created=False)


@dataclass(slots=True)
class ReconcileResult:
    """Counters describing what a reconcile call changed."""

    kind: CollectionKind
    success: bool = True
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    retained: int = 0
    skipped: int = 0
    error: str | None = None

    @property
    def count(self) -> int:
        """Number of incoming items now stored."""
        return self.inserted + self.updated

    def summary(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "success": self.success,
            "inserted": self.inserted,
            "updated": self.updated,
            "deleted": self.deleted,
            "retained": self.retained,
            "skipped": self.skipped,
            "error": self.error,
        }

    def to_payload(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {"success": True, "count": self.count, "retained": self.retained}


class CollectionAdapter(Generic[ItemT]):
    """Per-kind hooks the reconciler drives. Subclasses override the store calls."""

    kind: CollectionKind

    def prepare(self, incoming: Sequence[Any], scope: ReconcileScope) -> list[ItemT]:
        """Coerce raw payload items; raise ValueError/TypeError/KeyError when malformed."""
        raise NotImplementedError

    def item_id(self, item: ItemT) -> str:
        raise NotImplementedError

    def load(
        self, store: RecordStore, conn: sqlite3.Connection, scope: ReconcileScope
    ) -> dict[str, int]:
        """Return ``{stored id: dependent row count}`` for the scope."""
        raise NotImplementedError

    def accepts(
        self,
        store: RecordStore,
        conn: sqlite3.Connection,
        item: ItemT,
        stored: Mapping[str, int],
    ) -> bool:
        """Return False to skip an incoming item whose preconditions fail."""
        return True

    def delete(
        self, store: RecordStore, conn: sqlite3.Connection, item_id: str, scope: ReconcileScope
    ) -> None:
        raise NotImplementedError

    def update(
        self, store: RecordStore, conn: sqlite3.Connection, item: ItemT, scope: ReconcileScope
    ) -> None:
        raise NotImplementedError

    def insert(
        self, store: RecordStore, conn: sqlite3.Connection, item: ItemT, scope: ReconcileScope
    ) -> None:
        raise NotImplementedError

    def relink(self, store: RecordStore, conn: sqlite3.Connection, item: ItemT) -> None:
        """Rebuild owned link rows after every upsert has landed."""


class PromptAdapter(CollectionAdapter[Prompt]):
    kind = CollectionKind.PROMPTS

    def prepare(self, incoming: Sequence[Any], scope: ReconcileScope) -> list[Prompt]:
        if scope.is_user_created is None:
            raise ValueError("prompts must be reconciled as the user or the core collection")
        prompts = [Prompt.coerce(item) for item in incoming]
        return [replace(prompt, is_user_created=scope.is_user_created) for prompt in prompts]

    def item_id(self, item: Prompt) -> str:
        return item.id

    def load(
        self, store: RecordStore, conn: sqlite3.Connection, scope: ReconcileScope
    ) -> dict[str, int]:
        return store.fetch_prompt_dependents(conn, is_user_created=bool(scope.is_user_created))

    def accepts(
        self,
        store: RecordStore,
        conn: sqlite3.Connection,
        item: Prompt,
        stored: Mapping[str, int],
    ) -> bool:
        if item.id not in stored and store.has_prompt(conn, item.id):
            logger.warning(
                "Skipping prompt %s: the id belongs to a prompt outside this collection", item.id
            )
            return False
        return True

    def delete(
        self, store: RecordStore, conn: sqlite3.Connection, item_id: str, scope: ReconcileScope
    ) -> None:
        store.delete_prompt(conn, item_id)

    def update(
        self, store: RecordStore, conn: sqlite3.Connection, item: Prompt, scope: ReconcileScope
    ) -> None:
        store.update_prompt(conn, item)

    def insert(
        self, store: RecordStore, conn: sqlite3.Connection, item: Prompt, scope: ReconcileScope
    ) -> None:
        store.insert_prompt(conn, item)

    def relink(self, store: RecordStore, conn: sqlite3.Connection, item: Prompt) -> None:
        if item.tags is None:
            return
        store.replace_prompt_tags(conn, item.id, item.tags)


class CategoryAdapter(CollectionAdapter[Category]):
    kind = CollectionKind.CATEGORIES

    def prepare(self, incoming: Sequence[Any], scope: ReconcileScope) -> list[Category]:
        if scope.is_user_created is None:
            raise ValueError("categories must be reconciled as the user or the core collection")
        categories = [Category.coerce(item) for item in incoming]
        return [replace(category, is_user_created=scope.is_user_created) for category in categories]

    def item_id(self, item: Category) -> str:
        return item.id

    def load(
        self, store: RecordStore, conn: sqlite3.Connection, scope: ReconcileScope
    ) -> dict[str, int]:
        # Prompts reference categories softly; deleting one detaches them instead.
        categories = store.fetch_categories(conn, is_user_created=bool(scope.is_user_created))
        return {category.id: 0 for category in categories}

    def accepts(
        self,
        store: RecordStore,
        conn: sqlite3.Connection,
        item: Category,
        stored: Mapping[str, int],
    ) -> bool:
        if item.id not in stored and store.has_category(conn, item.id):
            logger.warning(
                "Skipping category %s: the id belongs to a category outside this collection",
                item.id,
            )
            return False
        return True

    def delete(
        self, store: RecordStore, conn: sqlite3.Connection, item_id: str, scope: ReconcileScope
    ) -> None:
        detached = store.delete_category(conn, item_id)
        if detached:
            logger.info("Detached %d prompt(s) from deleted category %s", detached, item_id)

    def update(
        self, store: RecordStore, conn: sqlite3.Connection, item: Category, scope: ReconcileScope
    ) -> None:
        store.update_category(conn, item)

    def insert(
        self, store: RecordStore, conn: sqlite3.Connection, item: Category, scope: ReconcileScope
    ) -> None:
        store.insert_category(conn, item)


class ResponseAdapter(CollectionAdapter[PromptResponse]):
    kind = CollectionKind.RESPONSES

    def prepare(self, incoming: Sequence[Any], scope: ReconcileScope) -> list[PromptResponse]:
        responses = [PromptResponse.coerce(item) for item in incoming]
        if scope.user_id is None:
            return responses
        return [replace(response, user_id=scope.user_id) for response in responses]

    def item_id(self, item: PromptResponse) -> str:
        return item.id

    def load(
        self, store: RecordStore, conn: sqlite3.Connection, scope: ReconcileScope
    ) -> dict[str, int]:
        return {response.id: 0 for response in store.fetch_responses(conn)}

    def accepts(
        self,
        store: RecordStore,
        conn: sqlite3.Connection,
        item: PromptResponse,
        stored: Mapping[str, int],
    ) -> bool:
        if not store.has_prompt(conn, item.prompt_id):
            logger.warning(
                "Skipping response %s: prompt %s does not exist", item.id, item.prompt_id
            )
            return False
        return True

    def delete(
        self, store: RecordStore, conn: sqlite3.Connection, item_id: str, scope: ReconcileScope
    ) -> None:
        store.delete_response_row(conn, item_id)

    def update(
        self,
        store: RecordStore,
        conn: sqlite3.Connection,
        item: PromptResponse,
        scope: ReconcileScope,
    ) -> None:
        store.update_response(conn, item)

    def insert(
        self,
        store: RecordStore,
        conn: sqlite3.Connection,
        item: PromptResponse,
        scope: ReconcileScope,
    ) -> None:
        store.insert_response(conn, item)


class FavoriteAdapter(CollectionAdapter[str]):
    kind = CollectionKind.FAVORITES

    def prepare(self, incoming: Sequence[Any], scope: ReconcileScope) -> list[str]:
        return [_prompt_id_of(item) for item in incoming]

    def item_id(self, item: str) -> str:
        return item

    def load(
        self, store: RecordStore, conn: sqlite3.Connection, scope: ReconcileScope
    ) -> dict[str, int]:
        return {prompt_id: 0 for prompt_id in store.fetch_favorite_ids(conn, user_id=scope.user_id)}

    def accepts(
        self, store: RecordStore, conn: sqlite3.Connection, item: str, stored: Mapping[str, int]
    ) -> bool:
        return store.has_prompt(conn, item)

    def delete(
        self, store: RecordStore, conn: sqlite3.Connection, item_id: str, scope: ReconcileScope
    ) -> None:
        store.delete_favorite(conn, item_id, user_id=scope.user_id)

    def update(
        self, store: RecordStore, conn: sqlite3.Connection, item: str, scope: ReconcileScope
    ) -> None:
        """Favourites carry no mutable fields."""

    def insert(
        self, store: RecordStore, conn: sqlite3.Connection, item: str, scope: ReconcileScope
    ) -> None:
        store.insert_favorite(conn, item, user_id=scope.user_id)


class RecentlyUsedAdapter(CollectionAdapter[RecentlyUsedEntry]):
    """Incoming ids are ordered newest first; timestamps are spaced to keep that order."""

    kind = CollectionKind.RECENTLY_USED

    def prepare(self, incoming: Sequence[Any], scope: ReconcileScope) -> list[RecentlyUsedEntry]:
        now = datetime.now(UTC)
        return [
            RecentlyUsedEntry(_prompt_id_of(item), now - timedelta(seconds=index))
            for index, item in enumerate(incoming)
        ]

    def item_id(self, item: RecentlyUsedEntry) -> str:
        return item.prompt_id

    def load(
        self, store: RecordStore, conn: sqlite3.Connection, scope: ReconcileScope
    ) -> dict[str, int]:
        entries = store.fetch_recently_used(conn, user_id=scope.user_id)
        return {entry.prompt_id: 0 for entry in entries}

    def accepts(
        self,
        store: RecordStore,
        conn: sqlite3.Connection,
        item: RecentlyUsedEntry,
        stored: Mapping[str, int],
    ) -> bool:
        return store.has_prompt(conn, item.prompt_id)

    def delete(
        self, store: RecordStore, conn: sqlite3.Connection, item_id: str, scope: ReconcileScope
    ) -> None:
        store.delete_recently_used(conn, item_id, user_id=scope.user_id)

    def update(
        self,
        store: RecordStore,
        conn: sqlite3.Connection,
        item: RecentlyUsedEntry,
        scope: ReconcileScope,
    ) -> None:
        store.update_recently_used(conn, item, user_id=scope.user_id)

    def insert(
        self,
        store: RecordStore,
        conn: sqlite3.Connection,
        item: RecentlyUsedEntry,
        scope: ReconcileScope,
    ) -> None:
        store.insert_recently_used(conn, item, user_id=scope.user_id)


def _prompt_id_of(item: Any) -> str:
    if isinstance(item, str):
        text = item.strip()
    elif isinstance(item, Prompt):
        text = item.id
    else:
        text = str(item["id"]).strip()
    if not text:
        raise ValueError("prompt id cannot be empty")
    return text


def default_adapters() -> dict[CollectionKind, CollectionAdapter[Any]]:
    adapters: list[CollectionAdapter[Any]] = [
        PromptAdapter(),
        CategoryAdapter(),
        ResponseAdapter(),
        FavoriteAdapter(),
        RecentlyUsedAdapter(),
    ]
    return {adapter.kind: adapter for adapter in adapters}


# Keyed by (database, kind); every scope of a kind shares one lock.
_COLLECTION_LOCKS: dict[tuple[str, CollectionKind], threading.Lock] = {}
_COLLECTION_LOCKS_GUARD = threading.Lock()


def collection_lock(store: RecordStore, kind: CollectionKind) -> threading.Lock:
    """Return the in-process lock serialising reconciles of ``kind`` in ``store``."""
    key = (str(store.db_path.resolve()), kind)
    with _COLLECTION_LOCKS_GUARD:
        lock = _COLLECTION_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _COLLECTION_LOCKS[key] = lock
        return lock


class CollectionReconciler:
    """Apply replace-all payloads to a :class:`~core.store.RecordStore`."""

    def __init__(
        self,
        store: RecordStore,
        adapters: Mapping[CollectionKind, CollectionAdapter[Any]] | None = None,
    ) -> None:
        self._store = store
        self._adapters = dict(adapters) if adapters is not None else default_adapters()

    def reconcile(
        self,
        kind: CollectionKind,
        incoming: Iterable[Any],
        scope: ReconcileScope | None = None,
    ) -> ReconcileResult:
        """Make the stored collection match ``incoming`` without orphaning dependents."""
        scope = scope or ReconcileScope()
        adapter = self._adapters[kind]
        try:
            items = adapter.prepare(list(incoming), scope)
        except (KeyError, TypeError, ValueError) as exc:
            message = f"Invalid {kind.value} payload: {exc}"
            logger.error(message)
            return ReconcileResult(kind, success=False, error=message)

        with collection_lock(self._store, kind):
            try:
                with self._store.transaction() as conn:
                    result = self._apply(adapter, conn, items, scope)
            except (StoreError, sqlite3.Error) as exc:
                message = f"Failed to store {kind.value}: {exc}"
                logger.error("%s; all changes rolled back", message)
                return ReconcileResult(kind, success=False, error=message)

        logger.info(
            "Reconciled %s: inserted=%d updated=%d deleted=%d retained=%d skipped=%d",
            kind.value,
            result.inserted,
            result.updated,
            result.deleted,
            result.retained,
            result.skipped,
        )
        return result

    def _apply(
        self,
        adapter: CollectionAdapter[Any],
        conn: sqlite3.Connection,
        items: Sequence[Any],
        scope: ReconcileScope,
    ) -> ReconcileResult:
        store = self._store
        result = ReconcileResult(adapter.kind)
        stored = adapter.load(store, conn, scope)

        unique: list[Any] = []
        seen: set[str] = set()
        for item in items:
            item_id = adapter.item_id(item)
            if item_id in seen:
                logger.warning("Ignoring repeated %s id %s in payload", adapter.kind.value, item_id)
                result.skipped += 1
                continue
            seen.add(item_id)
            unique.append(item)

        for stored_id, dependents in stored.items():
            if stored_id in seen:
                continue
            if dependents > 0:
                logger.info(
                    "Keeping %s %s: %d dependent row(s) still reference it",
                    adapter.kind.value,
                    stored_id,
                    dependents,
                )
                result.retained += 1
                continue
            adapter.delete(store, conn, stored_id, scope)
            result.deleted += 1

        upserted: list[Any] = []
        for item in unique:
            if not adapter.accepts(store, conn, item, stored):
                result.skipped += 1
                continue
            if adapter.item_id(item) in stored:
                adapter.update(store, conn, item, scope)
                result.updated += 1
            else:
                adapter.insert(store, conn, item, scope)
                result.inserted += 1
            upserted.append(item)

        for item in upserted:
            adapter.relink(store, conn, item)
        return result


__all__ = [
    "CORE_SCOPE",
    "USER_SCOPE",
    "CategoryAdapter",
    "CollectionAdapter",
    "CollectionKind",
    "CollectionReconciler",
    "FavoriteAdapter",
    "PromptAdapter",
    "RecentlyUsedAdapter",
    "ReconcileResult",
    "ReconcileScope",
    "ResponseAdapter",
    "collection_lock",
    "default_adapters",
]
