"""Prompt, response, and usage data model definitions.

Updates: v0.3.1 - 2026-10-17 - Omit tags from prompt payloads when no tag list was supplied.
Updates: v0.3.0 - 2026-09-24 - Add RecentlyUsedEntry and prefixed record id factory.
Updates: v0.2.0 - 2026-09-18 - Add PromptResponse with token accounting fields.
Updates: v0.1.0 - 2026-09-14 - Initial Prompt schema with payload and row helpers.
"""
from __future__ import annotations

import json
import secrets
import string
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

_BASE36_ALPHABET = string.digits + string.ascii_lowercase


def _utc_now() -> datetime:
    """Return an aware UTC timestamp."""
    return datetime.now(UTC)


def ensure_datetime(value: Any) -> datetime:
    """Parse incoming datetime values (isoformat strings, epoch millis, or datetime)."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if value is None or value == "":
        return _utc_now()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    text = str(value).strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def optional_datetime(value: Any) -> datetime | None:
    """Return ``None`` for empty values, otherwise parse like :func:`ensure_datetime`."""
    if value is None or value == "":
        return None
    return ensure_datetime(value)


def format_datetime(value: datetime | None) -> str | None:
    """Serialise datetimes as ISO-8601 strings for storage and export."""
    if value is None:
        return None
    return value.isoformat()


def new_record_id(prefix: str) -> str:
    """Return ``<prefix>_<epoch millis>_<5 base36 chars>`` identifiers."""
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(5))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def _normalise_tags(value: Iterable[Any] | None) -> list[str] | None:
    """Return trimmed tag names, or ``None`` when no tag list was supplied."""
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    tags: list[str] = []
    seen: set[str] = set()
    for raw in value:
        text = str(raw).strip()
        if not text or text in seen:
            continue
        seen.add(text)
        tags.append(text)
    return tags


def _require_text(data: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value is not None and str(value).strip():
            return str(value)
    raise ValueError(f"payload is missing required field '{keys[0]}'")


@dataclass(slots=True)
class Prompt:
    """Dataclass representation of a prompt entry.

    ``tags`` is ``None`` when the caller did not supply a tag list; reconciliation
    then leaves the existing tag links untouched.
    """

    id: str
    title: str
    prompt_text: str
    description: str = ""
    category_id: str | None = None
    is_user_created: bool = True
    usage_count: int = 0
    created_at: datetime = field(default_factory=_utc_now)
    last_used: datetime | None = None
    last_edited: datetime | None = None
    tags: list[str] | None = None

    def __post_init__(self) -> None:
        """Normalise identifiers and tag lists."""
        self.id = str(self.id).strip()
        if not self.id:
            raise ValueError("prompt id cannot be empty")
        self.category_id = (self.category_id or "").strip() or None
        self.tags = _normalise_tags(self.tags)

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase wire representation used by exports and the UI.

        ``tags`` is omitted when no tag list was supplied, so the payload keeps
        meaning "leave tag links alone" when it is fed back to a reconcile.
        """
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category_id or "",
            "promptText": self.prompt_text,
            "isUserCreated": self.is_user_created,
            "usageCount": self.usage_count,
            "createdAt": format_datetime(self.created_at),
            "lastUsed": format_datetime(self.last_used),
            "lastEdited": format_datetime(self.last_edited),
        }
        if self.tags is not None:
            payload["tags"] = list(self.tags)
        return payload

    def to_row(self) -> dict[str, Any]:
        """Return column values for the ``Prompt`` table."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "categoryId": self.category_id,
            "promptText": self.prompt_text,
            "isUserCreated": int(self.is_user_created),
            "usageCount": self.usage_count,
            "createdAt": format_datetime(self.created_at),
            "lastUsed": format_datetime(self.last_used),
            "lastEdited": format_datetime(self.last_edited),
        }

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> Prompt:
        """Create a Prompt from a camelCase wire mapping."""
        raw_tags = data.get("tags")
        return cls(
            id=_require_text(data, "id"),
            title=_require_text(data, "title"),
            prompt_text=_require_text(data, "promptText"),
            description=str(data.get("description") or ""),
            category_id=data.get("categoryId") or data.get("category") or None,
            is_user_created=bool(data.get("isUserCreated", True)),
            usage_count=int(data.get("usageCount") or 0),
            created_at=ensure_datetime(data.get("createdAt")),
            last_used=optional_datetime(data.get("lastUsed")),
            last_edited=optional_datetime(data.get("lastEdited")),
            tags=list(raw_tags) if isinstance(raw_tags, (list, tuple)) else None,
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any], tags: list[str] | None = None) -> Prompt:
        """Hydrate a Prompt from a ``Prompt`` table row."""
        return cls(
            id=row["id"],
            title=row["title"],
            prompt_text=row["promptText"],
            description=row["description"] or "",
            category_id=row["categoryId"],
            is_user_created=bool(row["isUserCreated"]),
            usage_count=int(row["usageCount"] or 0),
            created_at=ensure_datetime(row["createdAt"]),
            last_used=optional_datetime(row["lastUsed"]),
            last_edited=optional_datetime(row["lastEdited"]),
            tags=tags,
        )

    @classmethod
    def coerce(cls, item: Prompt | Mapping[str, Any]) -> Prompt:
        """Accept either a Prompt instance or a wire mapping."""
        if isinstance(item, Prompt):
            return item
        return cls.from_payload(item)


@dataclass(slots=True)
class PromptResponse:
    """Stored AI response generated from a prompt."""

    id: str
    prompt_id: str
    response_text: str
    model_used: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    created_at: datetime = field(default_factory=_utc_now)
    last_edited: datetime | None = None
    variables_used: dict[str, Any] | None = None
    user_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase wire representation."""
        return {
            "id": self.id,
            "promptId": self.prompt_id,
            "responseText": self.response_text,
            "modelUsed": self.model_used,
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "createdAt": format_datetime(self.created_at),
            "lastEdited": format_datetime(self.last_edited),
            "variablesUsed": self.variables_used,
        }

    def to_row(self) -> dict[str, Any]:
        """Return column values for the ``Response`` table."""
        return {
            "id": self.id,
            "promptId": self.prompt_id,
            "responseText": self.response_text,
            "modelUsed": self.model_used,
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "createdAt": format_datetime(self.created_at),
            "lastEdited": format_datetime(self.last_edited),
            "variablesUsed": (
                json.dumps(self.variables_used, ensure_ascii=False)
                if self.variables_used is not None
                else None
            ),
        }

    def content_key(self) -> tuple[str, str, str | None]:
        """Return the tuple used to recognise the same response under another id."""
        return (self.prompt_id, self.response_text, format_datetime(self.created_at))

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> PromptResponse:
        """Create a PromptResponse from a camelCase wire mapping."""
        variables = data.get("variablesUsed")
        if isinstance(variables, str):
            variables = json.loads(variables) if variables.strip() else None
        return cls(
            id=_require_text(data, "id"),
            prompt_id=_require_text(data, "promptId"),
            response_text=_require_text(data, "responseText"),
            model_used=data.get("modelUsed"),
            prompt_tokens=_optional_int(data.get("promptTokens")),
            completion_tokens=_optional_int(data.get("completionTokens")),
            total_tokens=_optional_int(data.get("totalTokens")),
            created_at=ensure_datetime(data.get("createdAt")),
            last_edited=optional_datetime(data.get("lastEdited")),
            variables_used=dict(variables) if isinstance(variables, Mapping) else None,
            user_id=data.get("userId"),
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> PromptResponse:
        """Hydrate from a ``Response`` row; ``userId`` exists from schema 2.0.0 on."""
        keys = row.keys() if hasattr(row, "keys") else ()
        raw_variables = row["variablesUsed"]
        return cls(
            id=row["id"],
            prompt_id=row["promptId"],
            response_text=row["responseText"],
            model_used=row["modelUsed"],
            prompt_tokens=row["promptTokens"],
            completion_tokens=row["completionTokens"],
            total_tokens=row["totalTokens"],
            created_at=ensure_datetime(row["createdAt"]),
            last_edited=optional_datetime(row["lastEdited"]),
            variables_used=json.loads(raw_variables) if raw_variables else None,
            user_id=row["userId"] if "userId" in keys else None,
        )

    @classmethod
    def coerce(cls, item: PromptResponse | Mapping[str, Any]) -> PromptResponse:
        """Accept either a PromptResponse instance or a wire mapping."""
        if isinstance(item, PromptResponse):
            return item
        return cls.from_payload(item)


@dataclass(slots=True, frozen=True)
class RecentlyUsedEntry:
    """A prompt id paired with the moment it was last used."""

    prompt_id: str
    used_at: datetime


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


__all__ = [
    "Prompt",
    "PromptResponse",
    "RecentlyUsedEntry",
    "ensure_datetime",
    "format_datetime",
    "new_record_id",
    "optional_datetime",
]
