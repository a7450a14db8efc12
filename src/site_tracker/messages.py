"""Typed messages accepted by the tracking service.

Host signals drive the session state machine; commands are requests from
the presentation layer that expect a response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

from .models import LimitUnit

IdleState = Literal["active", "idle", "locked"]


@dataclass(slots=True, frozen=True)
class FocusGained:
    target_id: int


@dataclass(slots=True, frozen=True)
class FocusLost:
    pass


@dataclass(slots=True, frozen=True)
class Navigated:
    target_id: int


@dataclass(slots=True, frozen=True)
class TargetRemoved:
    target_id: int


@dataclass(slots=True, frozen=True)
class IdleStateChanged:
    state: IdleState


@dataclass(slots=True, frozen=True)
class FlushTick:
    pass


@dataclass(slots=True, frozen=True)
class GetTodayStats:
    pass


@dataclass(slots=True, frozen=True)
class SetPaused:
    paused: bool


@dataclass(slots=True, frozen=True)
class GetSettings:
    pass


@dataclass(slots=True, frozen=True)
class SetSettings:
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ExportAll:
    pass


@dataclass(slots=True, frozen=True)
class ImportSnapshot:
    data: dict[str, Any]


@dataclass(slots=True, frozen=True)
class GetLimits:
    pass


@dataclass(slots=True, frozen=True)
class SetConstraint:
    domain: str
    limit: int
    unit: LimitUnit = LimitUnit.MINUTES
    enabled: bool = True


@dataclass(slots=True, frozen=True)
class RemoveConstraint:
    domain: str


@dataclass(slots=True, frozen=True)
class GetStatus:
    pass


Signal = Union[FocusGained, FocusLost, Navigated, TargetRemoved, IdleStateChanged, FlushTick]
Command = Union[
    GetTodayStats,
    SetPaused,
    GetSettings,
    SetSettings,
    ExportAll,
    ImportSnapshot,
    GetLimits,
    SetConstraint,
    RemoveConstraint,
    GetStatus,
]
Message = Union[Signal, Command]
