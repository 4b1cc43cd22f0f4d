"""Utility script to load and print prompt library settings for diagnostics.

Updates:
  v0.1.0 - 2026-10-11 - Report resolved database paths and schema versions.
"""

from __future__ import annotations

import traceback

from config.settings import SettingsError, load_settings


def main() -> int:
    """Load settings and report validation outcomes."""
    try:
        settings = load_settings()
    except SettingsError:
        traceback.print_exc()
        return 2
    print("Settings loaded successfully.")
    print(f"db_path={settings.db_path}")
    print(f"backup_dir={settings.backup_dir or settings.db_path.parent}")
    print(f"init_version={settings.init_version}")
    print(f"target_version={settings.target_version}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
