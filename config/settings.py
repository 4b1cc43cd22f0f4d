"""Settings management utilities for prompt library configuration.

Updates:
  v0.3.0 - 2026-10-03 - Accept legacy DATABASE_URL / DATABASE_*_VERSION variables.
  v0.2.0 - 2026-09-27 - Add import policy and export defaults.
  v0.1.0 - 2026-09-14 - Settings model with JSON config, env, and .env sources.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

_DOTENV_FALLBACK_PATH = ".env"

DEFAULT_DB_PATH = Path("data") / "prompt_library.db"
DEFAULT_INIT_VERSION = "1.0.0"
DEFAULT_TARGET_VERSION = "2.1.0"

_VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

# Field name -> env keys, looked up with the PROMPT_LIBRARY_ prefix.
# Legacy names are also honoured without the prefix.
_ENV_ALIASES: dict[str, list[str]] = {
    "db_path": ["DB_PATH", "DATABASE_PATH", "DATABASE_URL", "db_path"],
    "backup_dir": ["BACKUP_DIR", "backup_dir"],
    "init_version": ["INIT_VERSION", "DATABASE_INIT_VERSION", "init_version"],
    "target_version": ["TARGET_VERSION", "DATABASE_TARGET_VERSION", "target_version"],
    "seed_defaults": ["SEED_DEFAULTS", "seed_defaults"],
    "assume_prompt_exists_on_lookup_error": [
        "ASSUME_PROMPT_EXISTS_ON_LOOKUP_ERROR",
        "assume_prompt_exists_on_lookup_error",
    ],
    "export_include_responses": ["EXPORT_INCLUDE_RESPONSES", "export_include_responses"],
}

_LEGACY_ENV_KEYS = frozenset(
    {"DATABASE_URL", "DATABASE_PATH", "DATABASE_INIT_VERSION", "DATABASE_TARGET_VERSION"}
)

_DB_PATH_KEYS = ("db_path", "database_path", "database_url")

_JSON_CONFIG_KEYS = (
    "backup_dir",
    "init_version",
    "target_version",
    "seed_defaults",
    "assume_prompt_exists_on_lookup_error",
    "export_include_responses",
)


def _read_dotenv_values() -> dict[str, str]:
    """Load ``.env`` entries into a mapping without mutating ``os.environ``."""
    env_file_override = os.getenv("PROMPT_LIBRARY_ENV_FILE")
    if env_file_override is not None:
        candidate = env_file_override.strip()
        if not candidate:
            return {}
        path = Path(candidate).expanduser()
    else:
        path = Path(_DOTENV_FALLBACK_PATH).expanduser()
    if not path.is_file():
        return {}
    raw_values = dotenv_values(str(path))
    return {str(key): str(value) for key, value in raw_values.items() if value is not None}


def _strip_database_url(value: str) -> str:
    """Turn ``file:../library.db`` style URLs into plain filesystem paths."""
    text = value.strip()
    if text.startswith("file:"):
        text = text.removeprefix("file:")
        if text.startswith("//"):
            text = text[2:]
    return text


class SettingsError(Exception):
    """Raised when prompt library configuration cannot be loaded or validated."""


class PromptLibrarySettings(BaseSettings):
    """Application configuration sourced from environment variables or JSON files."""

    db_path: Path = Field(default=DEFAULT_DB_PATH, description="SQLite database file.")
    backup_dir: Path | None = Field(
        default=None,
        description="Directory receiving pre-upgrade backups (defaults to the db folder).",
    )
    init_version: str = Field(
        default=DEFAULT_INIT_VERSION,
        description="Version recorded for a freshly created store; describes the base schema.",
    )
    target_version: str = Field(
        default=DEFAULT_TARGET_VERSION,
        description="Schema version the store is upgraded to at startup.",
    )
    seed_defaults: bool = Field(
        default=True,
        description="Seed default categories, prompts, and settings into a fresh store.",
    )
    assume_prompt_exists_on_lookup_error: bool = Field(
        default=True,
        description=(
            "When checking an imported response's parent prompt fails, keep the response "
            "instead of dropping it."
        ),
    )
    export_include_responses: bool = Field(
        default=True,
        description="Include AI response history in exports unless told otherwise.",
    )

    model_config = cast(
        "SettingsConfigDict",
        {
            "env_prefix": "PROMPT_LIBRARY_",
            "case_sensitive": False,
            "extra": "ignore",
        },
    )

    @field_validator("db_path", mode="before")
    def _normalise_db_path(cls, value: Any) -> Path:
        """Expand user-relative paths, strip ``file:`` prefixes, and coerce to Path."""
        if value is None or not str(value).strip():
            raise ValueError("a database path is required")
        path = Path(_strip_database_url(str(value))).expanduser()
        return path.resolve()

    @field_validator("backup_dir", mode="before")
    def _normalise_backup_dir(cls, value: Any) -> Path | None:
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            return None
        return Path(text).expanduser().resolve()

    @field_validator("init_version", "target_version", mode="before")
    def _validate_version(cls, value: Any) -> str:
        """Require ``MAJOR.MINOR.PATCH`` version labels."""
        text = str(value or "").strip()
        if not _VERSION_PATTERN.match(text):
            raise ValueError(f"'{value}' is not a MAJOR.MINOR.PATCH version")
        return text

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
    ]:
        """Define configuration source precedence.

        Order (highest → lowest):
            1. Explicit keyword arguments (e.g. load_settings(db_path="...")).
            2. JSON configuration file.
            3. Environment variables / aliases (including ``.env`` values).
            4. File secrets.
        """

        def env_with_aliases(_: BaseSettings | None = None) -> dict[str, Any]:
            data: dict[str, Any] = {}
            config_dict = cast("dict[str, Any]", cls.model_config)
            prefix = str(config_dict.get("env_prefix", ""))
            dotenv_data = _read_dotenv_values()

            def _lookup(candidate: str) -> str | None:
                value = os.getenv(candidate)
                if value is None:
                    value = dotenv_data.get(candidate)
                if value is None:
                    return None
                stripped_value = str(value).strip()
                return stripped_value or None

            for field, keys in _ENV_ALIASES.items():
                for key in keys:
                    candidates = [f"{prefix}{key}", f"{prefix}{key.upper()}"]
                    if key in _LEGACY_ENV_KEYS:
                        candidates.append(key)
                    found = next(
                        (val for val in map(_lookup, candidates) if val is not None), None
                    )
                    if found is not None:
                        data[field] = found
                        break
            return data

        return (
            init_settings,
            cls._json_config_settings_source(settings_cls),
            cast("PydanticBaseSettingsSource", env_with_aliases),
            file_secret_settings,
        )

    @classmethod
    def _json_config_settings_source(
        cls,
        _: type[BaseSettings],
    ) -> PydanticBaseSettingsSource:
        """Return settings extracted from an optional JSON config file."""

        def _loader(_: BaseSettings | None = None) -> dict[str, Any]:
            explicit_path = os.getenv("PROMPT_LIBRARY_CONFIG_JSON")
            candidates: list[Path] = []
            if explicit_path:
                candidates.append(Path(explicit_path).expanduser())
            candidates.append((Path("config") / "config.json").expanduser())

            for path in candidates:
                if not path.exists():
                    if explicit_path and path == candidates[0]:
                        raise SettingsError(f"Configuration file not found: {path}")
                    continue
                try:
                    raw_contents = path.read_text(encoding="utf-8")
                except OSError as exc:  # pragma: no cover - filesystem failure is env-specific
                    raise SettingsError(f"Unable to read configuration file: {path}") from exc
                try:
                    data = json.loads(raw_contents)
                except json.JSONDecodeError as exc:
                    raise SettingsError(f"Invalid JSON in configuration file: {path}") from exc
                if not isinstance(data, dict):
                    message = f"Configuration file {path} must contain a JSON object"
                    raise SettingsError(message)
                mapping_data = cast("Mapping[object, Any]", data)
                data_dict: dict[str, Any] = {str(key): value for key, value in mapping_data.items()}
                mapped: dict[str, Any] = {}
                for alias in _DB_PATH_KEYS:
                    if alias in data_dict:
                        mapped["db_path"] = data_dict[alias]
                        break
                for key in _JSON_CONFIG_KEYS:
                    if key in data_dict:
                        mapped[key] = data_dict[key]
                ignored = sorted(set(data_dict) - set(_JSON_CONFIG_KEYS) - set(_DB_PATH_KEYS))
                if ignored:
                    logger.warning(
                        "Ignoring unknown key(s) %s in configuration file %s",
                        ", ".join(ignored),
                        path,
                    )
                return mapped
            return {}

        return cast("PydanticBaseSettingsSource", _loader)


def load_settings(**overrides: Any) -> PromptLibrarySettings:
    """Return validated settings, raising SettingsError on failure."""
    try:
        return PromptLibrarySettings(**overrides)
    except SettingsError:
        raise
    except ValidationError as exc:
        raise SettingsError("Invalid prompt library configuration") from exc


logger = logging.getLogger("prompt_library.settings")
