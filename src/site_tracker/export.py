"""Snapshot export and import validation."""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .models import LimitUnit

CSV_COLUMNS = ("date", "domain", "seconds", "visits")


class SnapshotError(ValueError):
    """Raised when an imported snapshot does not have the expected shape."""


class DomainRecordModel(BaseModel):
    seconds: int = Field(default=0, ge=0)
    visits: int = Field(default=0, ge=0)
    pages: dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", strict=True)

    @model_validator(mode="after")
    def _pages_match_seconds(self) -> "DomainRecordModel":
        if any(value < 0 for value in self.pages.values()):
            raise ValueError("page seconds must be non-negative")
        if sum(self.pages.values()) != self.seconds:
            raise ValueError("page seconds must add up to the domain total")
        return self


class ConstraintModel(BaseModel):
    domain: Optional[str] = None
    limit: int = Field(gt=0)
    unit: LimitUnit = LimitUnit.MINUTES
    enabled: bool = True

    model_config = ConfigDict(extra="forbid")


class LastActiveModel(BaseModel):
    target_id: int
    domain: str
    resource: str
    start_time: float

    model_config = ConfigDict(extra="forbid")


class SnapshotModel(BaseModel):
    site_stats: dict[str, dict[str, DomainRecordModel]] = Field(default_factory=dict)
    settings: Optional[dict[str, Any]] = None
    last_active: Optional[LastActiveModel] = None
    time_constraints: dict[str, ConstraintModel] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @field_validator("site_stats")
    @classmethod
    def _day_keys_are_dates(
        cls, value: dict[str, dict[str, DomainRecordModel]]
    ) -> dict[str, dict[str, DomainRecordModel]]:
        for day_key in value:
            try:
                datetime.strptime(day_key, "%Y-%m-%d")
            except ValueError as exc:
                raise ValueError(f"invalid day key {day_key!r}") from exc
        return value


def validate_snapshot(data: Any) -> dict[str, Any]:
    """Validate an imported snapshot and return it in storage form.

    Raises :class:`SnapshotError` without side effects when ``data`` is not a
    well-formed export.
    """
    if not isinstance(data, dict):
        raise SnapshotError("Snapshot must be a JSON object.")
    try:
        model = SnapshotModel.model_validate(data)
    except ValidationError as exc:
        raise SnapshotError(f"Invalid snapshot: {exc.error_count()} error(s)\n{exc}") from exc
    payload = model.model_dump(mode="json")
    for domain, constraint in payload["time_constraints"].items():
        constraint["domain"] = domain
    return payload


def parse_snapshot(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"Invalid JSON: {exc}") from exc
    return validate_snapshot(data)


def build_json(snapshot: Mapping[str, Any]) -> str:
    return json.dumps(snapshot, indent=2, sort_keys=True)


def build_csv(site_stats: Mapping[str, Any]) -> str:
    """Flatten a usage table into one ``date,domain,seconds,visits`` row per day and domain."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for day_key in sorted(site_stats):
        domains = site_stats[day_key] or {}
        for domain in sorted(domains):
            info = domains[domain] or {}
            writer.writerow(
                [day_key, domain, int(info.get("seconds", 0)), int(info.get("visits", 0))]
            )
    return buffer.getvalue()


def snapshot_from_records(
    records: Mapping[str, Any], settings: Mapping[str, Any]
) -> dict[str, Any]:
    """Assemble the export document from stored records and effective settings."""
    return {
        "site_stats": records.get("site_stats") or {},
        "settings": dict(settings),
        "last_active": records.get("last_active"),
        "time_constraints": records.get("time_constraints") or {},
    }
