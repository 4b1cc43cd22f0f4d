"""Data models for the prompt library.

Updates: v0.2.0 - 2026-09-24 - Export RecentlyUsedEntry and PromptResponse.
Updates: v0.1.0 - 2026-09-14 - Export Prompt and Category dataclasses.
"""

from .category_model import DEFAULT_CATEGORIES, Category
from .prompt_model import Prompt, PromptResponse, RecentlyUsedEntry, new_record_id

__all__ = [
    "DEFAULT_CATEGORIES",
    "Category",
    "Prompt",
    "PromptResponse",
    "RecentlyUsedEntry",
    "new_record_id",
]
