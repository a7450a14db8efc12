"""In-memory usage buffer and merge-on-flush into the durable usage table."""

from __future__ import annotations

import copy
import logging
import sqlite3
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

from .config import day_key_for
from .db import load_usage_table, save_usage_table
from .models import DomainRecord, UsageTable

logger = logging.getLogger(__name__)


class StatsAggregator:
    """Accumulates closed-session durations and commits them in batches.

    The buffer only ever holds deltas since the last successful flush. It is
    cleared after the merged table has been written, so a failed write leaves
    it in place for the next attempt.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        clock: Callable[[], float] = time.time,
        timezone: str = "UTC",
        reset_hour: int = 0,
    ) -> None:
        self._conn = conn
        self._clock = clock
        self._timezone = timezone
        self._reset_hour = reset_hour
        self._buffer: dict[str, dict[str, DomainRecord]] = {}

    def configure(self, *, timezone: str, reset_hour: int) -> None:
        self._timezone = timezone
        self._reset_hour = reset_hour

    def current_day_key(self) -> str:
        return day_key_for(self._clock(), self._timezone, self._reset_hour)

    def record(self, domain: str, seconds: int, resource: str) -> None:
        """Buffer one visit of ``seconds`` to ``resource`` under today's key."""
        if seconds <= 0:
            return
        day = self._buffer.setdefault(self.current_day_key(), {})
        entry = day.setdefault(domain, DomainRecord())
        entry.add(seconds, resource)
        logger.debug("Buffered %ss for %s (%s)", seconds, domain, resource)

    def has_pending(self) -> bool:
        return bool(self._buffer)

    def pending_seconds(self) -> int:
        return sum(
            record.seconds for day in self._buffer.values() for record in day.values()
        )

    def snapshot(self) -> UsageTable:
        """Serializable copy of the buffered deltas."""
        return {
            day_key: {domain: record.to_dict() for domain, record in domains.items()}
            for day_key, domains in self._buffer.items()
        }

    def flush(self) -> bool:
        """Merge buffered deltas into storage.

        Returns ``True`` when the buffer is empty afterwards.
        """
        if not self._buffer:
            return True
        delta = self.snapshot()
        try:
            existing = load_usage_table(self._conn)
            save_usage_table(self._conn, merge_usage(existing, delta))
        except sqlite3.Error:
            logger.exception(
                "Failed to flush %d buffered seconds; will retry.", self.pending_seconds()
            )
            return False
        logger.debug("Flushed %d day(s) of usage.", len(delta))
        self._buffer.clear()
        return True


def merge_usage(base: Mapping[str, Any], delta: Mapping[str, Any]) -> UsageTable:
    """Return ``base + delta`` without mutating either argument.

    Counters only ever grow. Malformed entries in ``base`` count as zero, and
    each record's ``seconds`` equals the sum of its pages afterwards whenever
    that held for both inputs.
    """
    merged: UsageTable = {
        day_key: copy.deepcopy(domains)
        for day_key, domains in base.items()
        if isinstance(domains, dict)
    }
    for day_key, domains in delta.items():
        if not isinstance(domains, dict):
            continue
        target_day = merged.setdefault(day_key, {})
        for domain, source in domains.items():
            if not isinstance(source, dict):
                continue
            target = _normalize_record(target_day.get(domain))
            target["seconds"] += _count(source.get("seconds"))
            target["visits"] += _count(source.get("visits"))
            pages = source.get("pages")
            if isinstance(pages, dict):
                for resource, seconds in pages.items():
                    target["pages"][resource] = target["pages"].get(resource, 0) + _count(
                        seconds
                    )
            target_day[domain] = target
    return merged


def prune_usage(table: Mapping[str, Any], today_key: str, retention_days: int) -> UsageTable:
    """Drop day keys older than ``retention_days`` before ``today_key``."""
    today = datetime.strptime(today_key, "%Y-%m-%d")
    cutoff = (today - timedelta(days=retention_days - 1)).strftime("%Y-%m-%d")
    return {
        day_key: copy.deepcopy(domains)
        for day_key, domains in table.items()
        if day_key >= cutoff
    }


def _normalize_record(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        return {"seconds": 0, "visits": 0, "pages": {}}
    pages = value.get("pages")
    return {
        "seconds": _count(value.get("seconds")),
        "visits": _count(value.get("visits")),
        "pages": (
            {resource: _count(seconds) for resource, seconds in pages.items()}
            if isinstance(pages, dict)
            else {}
        ),
    }


def _count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(int(value), 0)
