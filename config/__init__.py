"""Configuration helpers for the prompt library.

Updates: v0.2.0 - 2026-10-03 - Expose schema version defaults.
Updates: v0.1.0 - 2026-09-14 - Expose settings loader and configuration error types.
"""

from .settings import (
    DEFAULT_DB_PATH,
    DEFAULT_INIT_VERSION,
    DEFAULT_TARGET_VERSION,
    PromptLibrarySettings,
    SettingsError,
    load_settings,
)

__all__ = [
    "DEFAULT_DB_PATH",
    "DEFAULT_INIT_VERSION",
    "DEFAULT_TARGET_VERSION",
    "PromptLibrarySettings",
    "SettingsError",
    "load_settings",
]
