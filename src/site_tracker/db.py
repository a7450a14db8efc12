"""SQLite-backed durable record store.

State is kept as a handful of independent JSON documents keyed by name, so
each of them can be read and replaced without touching the others.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

from .models import UsageTable

logger = logging.getLogger(__name__)

DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"

SITE_STATS_KEY = "site_stats"
SETTINGS_KEY = "settings"
LAST_ACTIVE_KEY = "last_active"
CONSTRAINTS_KEY = "time_constraints"

RECORD_KEYS = (SITE_STATS_KEY, SETTINGS_KEY, LAST_ACTIVE_KEY, CONSTRAINTS_KEY)


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS records (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
    )


def get_record(conn: sqlite3.Connection, key: str) -> Optional[Any]:
    """Return the decoded document stored under ``key``, if any."""
    row = conn.execute("SELECT value FROM records WHERE key = ?", (key,)).fetchone()
    if row is None:
        return None
    try:
        return json.loads(row["value"])
    except json.JSONDecodeError:
        logger.warning("Stored record %s is not valid JSON; treating as missing.", key)
        return None


def set_record(conn: sqlite3.Connection, key: str, value: Any) -> None:
    conn.execute(
        """
        INSERT INTO records (key, value, updated_at) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at
        """,
        (key, json.dumps(value, sort_keys=True), datetime.now().strftime(DATETIME_FMT)),
    )


def delete_record(conn: sqlite3.Connection, key: str) -> None:
    conn.execute("DELETE FROM records WHERE key = ?", (key,))


def replace_records(conn: sqlite3.Connection, values: Mapping[str, Any]) -> None:
    """Write several records in one transaction; ``None`` deletes a record."""
    conn.execute("BEGIN")
    try:
        for key, value in values.items():
            if value is None:
                delete_record(conn, key)
            else:
                set_record(conn, key, value)
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def fetch_all_records(conn: sqlite3.Connection) -> dict[str, Any]:
    """Snapshot of every known record; missing ones are reported as ``None``."""
    return {key: get_record(conn, key) for key in RECORD_KEYS}


def load_usage_table(conn: sqlite3.Connection) -> UsageTable:
    table = get_record(conn, SITE_STATS_KEY)
    if not isinstance(table, dict):
        return {}
    return table


def save_usage_table(conn: sqlite3.Connection, table: UsageTable) -> None:
    set_record(conn, SITE_STATS_KEY, table)


def load_settings_overrides(conn: sqlite3.Connection) -> dict[str, Any]:
    stored = get_record(conn, SETTINGS_KEY)
    return stored if isinstance(stored, dict) else {}


def save_settings(conn: sqlite3.Connection, settings: Mapping[str, Any]) -> None:
    set_record(conn, SETTINGS_KEY, dict(settings))


def load_last_active(conn: sqlite3.Connection) -> Optional[dict[str, Any]]:
    stored = get_record(conn, LAST_ACTIVE_KEY)
    return stored if isinstance(stored, dict) else None


def save_last_active(conn: sqlite3.Connection, marker: Mapping[str, Any]) -> None:
    set_record(conn, LAST_ACTIVE_KEY, dict(marker))


def load_constraints(conn: sqlite3.Connection) -> dict[str, dict[str, Any]]:
    stored = get_record(conn, CONSTRAINTS_KEY)
    if not isinstance(stored, dict):
        return {}
    return {domain: value for domain, value in stored.items() if isinstance(value, dict)}


def save_constraints(
    conn: sqlite3.Connection, constraints: Mapping[str, Mapping[str, Any]]
) -> None:
    set_record(conn, CONSTRAINTS_KEY, {domain: dict(value) for domain, value in constraints.items()})
