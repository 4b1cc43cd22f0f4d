"""Category metadata models and helpers.

Updates: v0.1.0 - 2026-09-14 - Introduce Category dataclass and default category set.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class Category:
    """Structured representation of a prompt category."""

    id: str
    name: str
    is_user_created: bool = True

    def __post_init__(self) -> None:
        """Trim identifiers and reject blank values."""
        self.id = str(self.id).strip()
        self.name = str(self.name).strip()
        if not self.id:
            raise ValueError("category id cannot be empty")
        if not self.name:
            raise ValueError("category name cannot be empty")

    def to_payload(self) -> dict[str, Any]:
        """Serialize the category into its camelCase wire form."""
        return {"id": self.id, "name": self.name, "isUserCreated": self.is_user_created}

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> Category:
        """Hydrate a Category from a wire mapping."""
        if data.get("id") is None or data.get("name") is None:
            raise ValueError("category payload requires 'id' and 'name'")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            is_user_created=bool(data.get("isUserCreated", True)),
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Category:
        return cls(id=row["id"], name=row["name"], is_user_created=bool(row["isUserCreated"]))

    @classmethod
    def coerce(cls, item: Category | Mapping[str, Any]) -> Category:
        """Accept either a Category instance or a wire mapping."""
        if isinstance(item, Category):
            return item
        return cls.from_payload(item)


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category("artist-bio", "Artist Bio", is_user_created=False),
    Category("song-story", "Song Story", is_user_created=False),
    Category("show-segments", "Show Segments", is_user_created=False),
    Category("music-trivia", "Music Trivia", is_user_created=False),
    Category("interviews", "Interviews", is_user_created=False),
    Category("weather", "Weather", is_user_created=False),
    Category("features", "Features", is_user_created=False),
    Category("social-media", "Social Media", is_user_created=False),
)


__all__ = ["DEFAULT_CATEGORIES", "Category"]
