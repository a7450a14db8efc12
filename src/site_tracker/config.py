"""Configuration models and helpers for the site tracker."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TrackerSettings:
    """Process-wide tracker configuration.

    Instances are immutable; updates produce a new instance through
    :meth:`merged`, which keeps defaults for anything not overridden.
    """

    idle_timeout_seconds: int = 60
    tracking_paused: bool = False
    timezone: str = "UTC"
    daily_reset_hour: int = 0
    retention_days: int = 90
    flush_interval_seconds: int = 60
    time_granularity: str = "seconds"

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> "TrackerSettings":
        """Build settings from stored overrides layered over the defaults."""
        return cls().merged(values or {})

    def merged(self, overrides: Mapping[str, Any]) -> "TrackerSettings":
        """Return a copy with valid overrides applied.

        Unknown keys and values of the wrong type are ignored so a partial or
        stale stored record never prevents startup.
        """
        accepted: dict[str, Any] = {}
        known = {field.name for field in fields(self)}
        for key, value in overrides.items():
            if key not in known:
                logger.debug("Ignoring unknown setting %r", key)
                continue
            if not _is_valid(key, value):
                logger.warning("Ignoring invalid value for setting %s: %r", key, value)
                continue
            accepted[key] = value
        return replace(self, **accepted)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def day_key(self, timestamp: float) -> str:
        return day_key_for(timestamp, self.timezone, self.daily_reset_hour)


def resolve_zone(name: str) -> ZoneInfo | timezone:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; falling back to UTC.", name)
        return timezone.utc


def day_key_for(timestamp: float, zone_name: str = "UTC", reset_hour: int = 0) -> str:
    """Return the YYYY-MM-DD bucket for an epoch timestamp.

    A day begins at ``reset_hour`` local time in ``zone_name``.
    """
    local = datetime.fromtimestamp(timestamp, tz=resolve_zone(zone_name))
    return (local - timedelta(hours=reset_hour)).strftime("%Y-%m-%d")


def _is_valid(key: str, value: Any) -> bool:
    if key == "tracking_paused":
        return isinstance(value, bool)
    if key in {"timezone", "time_granularity"}:
        if not isinstance(value, str) or not value:
            return False
        if key == "timezone":
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError):
                return False
        return True
    # Remaining settings are integer counts.
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    if key == "daily_reset_hour":
        return 0 <= value <= 23
    return value > 0
