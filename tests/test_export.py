import json

import pytest

from site_tracker.export import (
    SnapshotError,
    build_csv,
    build_json,
    parse_snapshot,
    snapshot_from_records,
    validate_snapshot,
)

TABLE = {
    "2026-10-19": {
        "b.example": {"seconds": 5, "visits": 1, "pages": {"https://b.example/": 5}},
        "a.example": {"seconds": 45, "visits": 2, "pages": {"https://a.example/x": 45}},
    },
    "2026-10-18": {
        "a.example": {"seconds": 3, "visits": 1, "pages": {"https://a.example/": 3}},
    },
}


def test_build_csv_flattens_day_by_domain():
    lines = build_csv(TABLE).splitlines()
    assert lines == [
        "date,domain,seconds,visits",
        "2026-10-18,a.example,3,1",
        "2026-10-19,a.example,45,2",
        "2026-10-19,b.example,5,1",
    ]


def test_build_csv_for_empty_table_has_header_only():
    assert build_csv({}) == "date,domain,seconds,visits\n"


def test_snapshot_round_trips_through_json():
    snapshot = snapshot_from_records({"site_stats": TABLE}, {"idle_timeout_seconds": 60})
    assert snapshot["time_constraints"] == {}
    assert snapshot["last_active"] is None
    assert parse_snapshot(build_json(snapshot))["site_stats"] == TABLE


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"site_stats": {"19-10-2026": {}}},
        {"site_stats": {"2026-10-19": {"a.example": {"seconds": 10, "visits": 1, "pages": {}}}}},
        {"site_stats": {"2026-10-19": {"a.example": {"seconds": "10"}}}},
        {"time_constraints": {"a.example": {"limit": 0}}},
        {"time_constraints": {"a.example": {"limit": 5, "unit": "days"}}},
        {"siteStats": {}},
        {"last_active": {"target_id": 1}},
    ],
)
def test_validate_snapshot_rejects_malformed_data(data):
    with pytest.raises(SnapshotError):
        validate_snapshot(data)


def test_parse_snapshot_rejects_invalid_json():
    with pytest.raises(SnapshotError, match="Invalid JSON"):
        parse_snapshot("{not json")


def test_validate_snapshot_fills_constraint_domain():
    payload = validate_snapshot(
        {"time_constraints": {"a.example": {"limit": 30}}, "settings": {"retention_days": 7}}
    )
    assert payload["time_constraints"]["a.example"] == {
        "domain": "a.example",
        "limit": 30,
        "unit": "minutes",
        "enabled": True,
    }
    assert payload["site_stats"] == {}
    assert payload["settings"] == {"retention_days": 7}
    assert json.loads(json.dumps(payload)) == payload
