"""Command-line interface for the site tracker."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from .config import TrackerSettings
from .paths import get_db_path, get_log_path

app = typer.Typer(help="Local-first per-site browsing time tracker.")


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the usage SQLite database."
    ),
    idle_timeout: Optional[int] = typer.Option(
        None,
        "--idle-timeout",
        min=15,
        help="Seconds of inactivity before the host reports idle.",
    ),
    flush_seconds: Optional[int] = typer.Option(
        None,
        "--flush-interval",
        min=5,
        help="Seconds between periodic flushes of buffered usage.",
    ),
    timezone: Optional[str] = typer.Option(
        None, "--timezone", help="IANA timezone used to bucket usage by day."
    ),
    log_file: bool = typer.Option(
        False, "--log-file", help="Also write logs to the per-user log file."
    ),
) -> None:
    """Start the local API that receives browser signals and serves stats."""
    from .server_runner import run_server

    if log_file:
        handler = logging.FileHandler(get_log_path(), encoding="utf-8")
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        logging.getLogger().addHandler(handler)

    overrides: dict[str, Any] = {}
    if idle_timeout is not None:
        overrides["idle_timeout_seconds"] = idle_timeout
    if flush_seconds is not None:
        overrides["flush_interval_seconds"] = flush_seconds
    if timezone is not None:
        overrides["timezone"] = timezone
    run_server(host=host, port=port, db_path=db_path or get_db_path(), overrides=overrides)


@app.command()
def summary(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Last day (YYYY-MM-DD) to summarize. Defaults to today.",
    ),
    days: int = typer.Option(1, "--days", min=1, help="Number of days to include."),
    sort_by: str = typer.Option(
        "time-desc", "--sort", help="time-desc, time-asc, name-asc or visits-desc."
    ),
    search: str = typer.Option("", "--search", help="Only show domains containing this text."),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the usage SQLite database.",
    ),
) -> None:
    """Print per-site totals for a day or a range of days."""
    from .db import database_connection, load_settings_overrides
    from .reporting import SORT_KEYS, SummaryPrinter

    if sort_by not in SORT_KEYS:
        raise typer.BadParameter(f"sort must be one of {', '.join(SORT_KEYS)}")
    db_path = db_path or get_db_path()
    if date is None:
        with database_connection(db_path) as conn:
            settings = TrackerSettings.from_mapping(load_settings_overrides(conn))
        date = settings.day_key(time.time())
    target = datetime.strptime(date, "%Y-%m-%d")
    summary_printer = SummaryPrinter(db_path=db_path)
    summary_printer.print_summary(target, days=days, sort_by=sort_by, search=search)


@app.command()
def export(
    format: str = typer.Option("json", "--format", help="json or csv."),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", path_type=Path, help="Write to a file instead of stdout."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the usage SQLite database."
    ),
) -> None:
    """Export all stored data as a JSON snapshot or a CSV table."""
    from .db import database_connection, fetch_all_records
    from .export import build_csv, build_json, snapshot_from_records

    if format not in {"json", "csv"}:
        raise typer.BadParameter("format must be json or csv")
    with database_connection(db_path or get_db_path()) as conn:
        records = fetch_all_records(conn)
    settings = TrackerSettings.from_mapping(records.get("settings"))
    snapshot = snapshot_from_records(records, settings.to_dict())
    text = build_csv(snapshot["site_stats"]) if format == "csv" else build_json(snapshot)
    if output:
        output.write_text(text, encoding="utf-8")
        typer.echo(f"Wrote {output}")
    else:
        typer.echo(text)


@app.command("import")
def import_data(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON snapshot file."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the usage SQLite database."
    ),
) -> None:
    """Replace stored data with a JSON snapshot. Stop the server first."""
    from .db import database_connection, replace_records
    from .export import SnapshotError, parse_snapshot

    try:
        payload = parse_snapshot(source.read_text(encoding="utf-8"))
    except SnapshotError as exc:
        typer.echo(f"Import failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    with database_connection(db_path or get_db_path()) as conn:
        if payload["settings"] is None:
            payload.pop("settings")
        else:
            payload["settings"] = TrackerSettings.from_mapping(payload["settings"]).to_dict()
        replace_records(conn, payload)
    typer.echo(f"Imported {len(payload['site_stats'])} day(s) of usage.")


@app.command()
def prune(
    days: Optional[int] = typer.Option(
        None, "--days", min=1, help="Days to keep. Defaults to the retention setting."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the usage SQLite database."
    ),
) -> None:
    """Delete usage older than the retention window. Stop the server first."""
    from .aggregator import prune_usage
    from .db import database_connection, load_settings_overrides, load_usage_table, save_usage_table

    with database_connection(db_path or get_db_path()) as conn:
        settings = TrackerSettings.from_mapping(load_settings_overrides(conn))
        table = load_usage_table(conn)
        kept = prune_usage(table, settings.day_key(time.time()), days or settings.retention_days)
        save_usage_table(conn, kept)
    typer.echo(f"Removed {len(table) - len(kept)} day(s); kept {len(kept)}.")


@app.command()
def limits(
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the usage SQLite database."
    ),
) -> None:
    """Show today's status for every configured time limit."""
    from .db import database_connection, load_constraints, load_settings_overrides, load_usage_table
    from .limits import constraint_from_mapping, evaluate_constraints
    from .reporting import format_duration

    with database_connection(db_path or get_db_path()) as conn:
        settings = TrackerSettings.from_mapping(load_settings_overrides(conn))
        table = load_usage_table(conn)
        stored = load_constraints(conn)

    constraints = []
    for domain, value in sorted(stored.items()):
        try:
            constraints.append(constraint_from_mapping(domain, value))
        except ValueError as exc:
            typer.echo(f"Skipping {domain}: {exc}", err=True)
    if not constraints:
        typer.echo("No time limits configured.")
        return

    day_usage = table.get(settings.day_key(time.time()), {})
    for report in evaluate_constraints(constraints, day_usage):
        typer.echo(
            f"{report['domain'][:40]:<40} {format_duration(report['used_seconds'])} / "
            f"{report['limit']} {report['unit']:<7} {report['status']}"
        )
