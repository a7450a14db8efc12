"""Daily time-budget evaluation for configured domains."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from .models import Constraint, LimitStatus, LimitUnit

WARNING_RATIO = 0.8


def limit_seconds(constraint: Constraint) -> int:
    return constraint.limit * (3600 if constraint.unit is LimitUnit.HOURS else 60)


def constraint_status(constraint: Constraint, usage_seconds: float) -> LimitStatus:
    if not constraint.enabled:
        return LimitStatus.PAUSED
    budget = limit_seconds(constraint)
    if usage_seconds >= budget:
        return LimitStatus.EXCEEDED
    if usage_seconds >= WARNING_RATIO * budget:
        return LimitStatus.WARNING
    return LimitStatus.ACTIVE


def evaluate_constraints(
    constraints: Iterable[Constraint], day_usage: Mapping[str, Any]
) -> list[dict[str, Any]]:
    """Describe each constraint against one day's usage records."""
    reports: list[dict[str, Any]] = []
    for constraint in constraints:
        record = day_usage.get(constraint.domain)
        used = int(record.get("seconds", 0)) if isinstance(record, dict) else 0
        budget = limit_seconds(constraint)
        percent = min(100, round(used / budget * 100)) if budget > 0 else 100
        reports.append(
            {
                **constraint.to_dict(),
                "used_seconds": used,
                "limit_seconds": budget,
                "percent": percent,
                "status": constraint_status(constraint, used).value,
            }
        )
    return reports


def constraint_from_mapping(domain: str, value: Mapping[str, Any]) -> Constraint:
    """Build a constraint from its stored form.

    Raises ``ValueError`` for an unknown unit or a non-positive limit.
    """
    limit = value.get("limit")
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValueError(f"Invalid limit for {domain}: {limit!r}")
    return Constraint(
        domain=domain,
        limit=limit,
        unit=LimitUnit(value.get("unit", LimitUnit.MINUTES.value)),
        enabled=bool(value.get("enabled", True)),
    )
