"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Mapping

from .db import database_connection, load_usage_table

SORT_KEYS = ("time-desc", "time-asc", "name-asc", "visits-desc")


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_summary(
        self,
        end_day: datetime,
        *,
        days: int = 1,
        sort_by: str = "time-desc",
        search: str = "",
        limit: int = 20,
    ) -> None:
        with database_connection(self.db_path) as conn:
            table = load_usage_table(conn)
        day_keys = day_keys_ending(end_day, days)
        totals = aggregate_by_domain(table, day_keys)
        entries = sort_entries(filter_entries(totals.items(), search), sort_by)
        if not entries:
            print("No activity recorded for the selected range.")
            return

        total_seconds = sum(info["seconds"] for _, info in entries)
        label = day_keys[0] if days == 1 else f"{day_keys[-1]} .. {day_keys[0]}"
        print(f"Summary for {label}")
        print("-" * 40)
        print(f"Active time: {format_duration(total_seconds)}")
        print(f"Sites:       {len(entries)}")
        print()
        print("Top sites:")
        for domain, info in entries[:limit]:
            visits = info["visits"]
            noun = "visit" if visits == 1 else "visits"
            print(
                f"  {domain[:40]:<40} {format_duration(info['seconds'])}  {visits} {noun}"
            )

        top_pages = aggregate_top_pages(table, day_keys)
        if top_pages:
            print()
            print("Top pages:")
            for url, seconds in top_pages[:5]:
                print(f"  {url[:60]:<60} {format_duration(seconds)}")


def day_keys_ending(end_day: datetime, days: int) -> list[str]:
    """Day keys from ``end_day`` backwards, newest first."""
    return [(end_day - timedelta(days=offset)).strftime("%Y-%m-%d") for offset in range(days)]


def aggregate_by_domain(
    table: Mapping[str, Any], day_keys: Iterable[str] | None = None
) -> dict[str, dict[str, int]]:
    """Sum seconds and visits per domain over ``day_keys`` (all days if omitted)."""
    keys = table.keys() if day_keys is None else day_keys
    totals: defaultdict[str, dict[str, int]] = defaultdict(lambda: {"seconds": 0, "visits": 0})
    for day_key in keys:
        for domain, info in (table.get(day_key) or {}).items():
            totals[domain]["seconds"] += int(info.get("seconds", 0))
            totals[domain]["visits"] += int(info.get("visits", 0))
    return dict(totals)


def aggregate_top_pages(
    table: Mapping[str, Any], day_keys: Iterable[str]
) -> list[tuple[str, int]]:
    totals: defaultdict[str, int] = defaultdict(int)
    for day_key in day_keys:
        for info in (table.get(day_key) or {}).values():
            for url, seconds in (info.get("pages") or {}).items():
                totals[url] += int(seconds)
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def filter_entries(
    entries: Iterable[tuple[str, dict[str, int]]], search: str
) -> list[tuple[str, dict[str, int]]]:
    term = search.strip().lower()
    if not term:
        return list(entries)
    return [(domain, info) for domain, info in entries if term in domain.lower()]


def sort_entries(
    entries: Iterable[tuple[str, dict[str, int]]], sort_by: str = "time-desc"
) -> list[tuple[str, dict[str, int]]]:
    items = list(entries)
    if sort_by == "time-asc":
        return sorted(items, key=lambda item: item[1]["seconds"])
    if sort_by == "name-asc":
        return sorted(items, key=lambda item: item[0])
    if sort_by == "visits-desc":
        return sorted(items, key=lambda item: item[1]["visits"], reverse=True)
    return sorted(items, key=lambda item: item[1]["seconds"], reverse=True)


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
