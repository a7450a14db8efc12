import json
from datetime import datetime, timezone
from types import SimpleNamespace

from typer.testing import CliRunner

from site_tracker import cli
from site_tracker.cli import app
from site_tracker.db import (
    database_connection,
    load_usage_table,
    save_constraints,
    save_settings,
    save_usage_table,
)

runner = CliRunner()

TABLE = {
    "2026-10-19": {
        "a.example": {"seconds": 45, "visits": 2, "pages": {"https://a.example/x": 45}},
        "b.example": {"seconds": 5, "visits": 1, "pages": {"https://b.example/": 5}},
    },
    "2020-01-01": {
        "old.example": {"seconds": 1, "visits": 1, "pages": {"https://old.example/": 1}},
    },
}


def _seed(db_path):
    with database_connection(db_path) as conn:
        save_usage_table(conn, TABLE)


def test_summary_prints_top_sites(db_path):
    _seed(db_path)
    result = runner.invoke(app, ["summary", "--date", "2026-10-19", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "Active time: 00:00:50" in result.output
    assert result.output.index("a.example") < result.output.index("b.example")
    assert "2 visits" in result.output


def test_summary_search_without_matches(db_path):
    _seed(db_path)
    result = runner.invoke(
        app,
        ["summary", "--date", "2026-10-19", "--search", "zzz", "--db", str(db_path)],
    )
    assert result.exit_code == 0
    assert "No activity recorded" in result.output


def test_export_csv_to_file(db_path, tmp_path):
    _seed(db_path)
    target = tmp_path / "out.csv"
    result = runner.invoke(
        app, ["export", "--format", "csv", "--output", str(target), "--db", str(db_path)]
    )
    assert result.exit_code == 0
    assert target.read_text(encoding="utf-8").splitlines()[1] == "2020-01-01,old.example,1,1"


def test_import_rejects_invalid_snapshot(db_path, tmp_path):
    _seed(db_path)
    source = tmp_path / "bad.json"
    source.write_text(json.dumps({"site_stats": {"nope": {}}}), encoding="utf-8")

    result = runner.invoke(app, ["import", str(source), "--db", str(db_path)])

    assert result.exit_code == 1
    with database_connection(db_path) as conn:
        assert load_usage_table(conn) == TABLE


def test_import_then_export_json(db_path, tmp_path):
    source = tmp_path / "snapshot.json"
    source.write_text(json.dumps({"site_stats": TABLE}), encoding="utf-8")

    assert runner.invoke(app, ["import", str(source), "--db", str(db_path)]).exit_code == 0
    result = runner.invoke(app, ["export", "--db", str(db_path)])
    assert json.loads(result.stdout)["site_stats"] == TABLE


def test_prune_drops_old_days(db_path):
    _seed(db_path)
    result = runner.invoke(app, ["prune", "--days", "30", "--db", str(db_path)])
    assert result.exit_code == 0
    with database_connection(db_path) as conn:
        assert "2020-01-01" not in load_usage_table(conn)


def test_limits_lists_configured_budgets(db_path):
    with database_connection(db_path) as conn:
        save_constraints(conn, {"a.example": {"domain": "a.example", "limit": 10, "unit": "minutes"}})
    result = runner.invoke(app, ["limits", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "a.example" in result.output
    assert "10 minutes" in result.output


def test_summary_defaults_to_tracker_day_key(db_path, monkeypatch):
    late_evening_utc = datetime(2026, 10, 19, 23, 30, tzinfo=timezone.utc).timestamp()
    monkeypatch.setattr(cli, "time", SimpleNamespace(time=lambda: late_evening_utc))
    with database_connection(db_path) as conn:
        save_settings(conn, {"timezone": "Pacific/Kiritimati"})
        save_usage_table(
            conn,
            {
                "2026-10-19": {
                    "b.example": {"seconds": 5, "visits": 1, "pages": {"https://b.example/": 5}}
                },
                "2026-10-20": {
                    "a.example": {"seconds": 7, "visits": 1, "pages": {"https://a.example/": 7}}
                },
            },
        )

    result = runner.invoke(app, ["summary", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "Summary for 2026-10-20" in result.output
    assert "a.example" in result.output
    assert "b.example" not in result.output


def test_summary_default_day_honours_reset_hour(db_path, monkeypatch):
    early_morning_utc = datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc).timestamp()
    monkeypatch.setattr(cli, "time", SimpleNamespace(time=lambda: early_morning_utc))
    with database_connection(db_path) as conn:
        save_settings(conn, {"daily_reset_hour": 4})
        save_usage_table(
            conn,
            {"2026-10-18": {"c.example": {"seconds": 3, "visits": 1, "pages": {"https://c.example/": 3}}}},
        )

    result = runner.invoke(app, ["summary", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "Summary for 2026-10-18" in result.output
    assert "c.example" in result.output
