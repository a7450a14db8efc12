"""Per-user locations for the usage database and log file."""

from __future__ import annotations

from pathlib import Path

import platformdirs

APP_NAME = "site-tracker"


def get_data_dir() -> Path:
    return platformdirs.user_data_path(APP_NAME, appauthor=False, ensure_exists=True)


def get_db_path() -> Path:
    return get_data_dir() / "usage.sqlite3"


def get_log_path() -> Path:
    """Log file in the platform's log directory, created on first use."""
    return platformdirs.user_log_path(APP_NAME, appauthor=False, ensure_exists=True) / "tracker.log"
