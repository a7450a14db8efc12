"""Domain models for tracked browsing activity."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


@dataclass(slots=True, frozen=True)
class TargetInfo:
    """Host-side metadata for a focusable tab or window."""

    target_id: int
    url: Optional[str]
    window_id: Optional[int] = None


@dataclass(slots=True, frozen=True)
class Session:
    """The single open interval attributed to one target/domain pair."""

    target_id: int
    domain: str
    resource: str
    start_time: float

    def elapsed_seconds(self, now: float) -> int:
        """Whole seconds since the session opened, never negative."""
        return max(int(now - self.start_time), 0)


@dataclass(slots=True)
class DomainRecord:
    """Cumulative usage of one domain on one day."""

    seconds: int = 0
    visits: int = 0
    pages: dict[str, int] = field(default_factory=dict)

    def add(self, seconds: int, resource: str, visits: int = 1) -> None:
        self.seconds += seconds
        self.visits += visits
        self.pages[resource] = self.pages.get(resource, 0) + seconds

    def to_dict(self) -> dict[str, Any]:
        return {"seconds": self.seconds, "visits": self.visits, "pages": dict(self.pages)}


@dataclass(slots=True, frozen=True)
class LastActiveMarker:
    """Best-effort hint of the most recently opened session."""

    target_id: int
    domain: str
    resource: str
    start_time: float

    @classmethod
    def from_session(cls, session: Session) -> "LastActiveMarker":
        return cls(
            target_id=session.target_id,
            domain=session.domain,
            resource=session.resource,
            start_time=session.start_time,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class LimitUnit(str, Enum):
    MINUTES = "minutes"
    HOURS = "hours"


class LimitStatus(str, Enum):
    PAUSED = "paused"
    EXCEEDED = "exceeded"
    WARNING = "warning"
    ACTIVE = "active"


@dataclass(slots=True, frozen=True)
class Constraint:
    """A user-configured daily time budget for one domain."""

    domain: str
    limit: int
    unit: LimitUnit = LimitUnit.MINUTES
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "limit": self.limit,
            "unit": self.unit.value,
            "enabled": self.enabled,
        }


UsageTable = dict[str, dict[str, dict[str, Any]]]
"""day_key -> domain -> {"seconds", "visits", "pages"} as persisted."""
