"""Single-owner event loop around the session tracker."""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
import time
from concurrent.futures import Future
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from .aggregator import StatsAggregator, merge_usage
from .config import TrackerSettings
from .db import (
    CONSTRAINTS_KEY,
    LAST_ACTIVE_KEY,
    SETTINGS_KEY,
    SITE_STATS_KEY,
    fetch_all_records,
    load_constraints,
    load_settings_overrides,
    load_usage_table,
    open_database,
    replace_records,
    save_constraints,
    save_last_active,
    save_settings,
)
from .export import snapshot_from_records, validate_snapshot
from .host import IdleConfigurator, TargetDirectory
from .limits import constraint_from_mapping, evaluate_constraints
from .messages import (
    ExportAll,
    FlushTick,
    FocusGained,
    FocusLost,
    GetLimits,
    GetSettings,
    GetStatus,
    GetTodayStats,
    IdleStateChanged,
    ImportSnapshot,
    Message,
    Navigated,
    RemoveConstraint,
    SetConstraint,
    SetPaused,
    SetSettings,
    TargetRemoved,
)
from .models import Constraint, LastActiveMarker, LimitUnit, Session, UsageTable
from .tracker import SessionTracker

logger = logging.getLogger(__name__)

_POLL_SECONDS = 0.5


class TrackingService:
    """Processes host signals and commands one at a time.

    Producers on any thread call :meth:`submit`; a single consumer drains the
    queue in order via :meth:`run_until_stopped`, so a close/open pair or a
    flush is never interleaved with another message.
    """

    def __init__(
        self,
        db_path: Path,
        directory: TargetDirectory,
        *,
        idle_configurator: Optional[IdleConfigurator] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.db_path = Path(db_path)
        self._conn = open_database(self.db_path, check_same_thread=False)
        self._monotonic = monotonic
        self._inbox: queue.Queue[tuple[Message, Future]] = queue.Queue()

        settings = TrackerSettings.from_mapping(load_settings_overrides(self._conn))
        if overrides:
            settings = settings.merged(overrides)
            save_settings(self._conn, settings.to_dict())

        self._aggregator = StatsAggregator(self._conn, clock=clock)
        self._tracker = SessionTracker(
            directory,
            self._aggregator,
            settings=settings,
            clock=clock,
            idle_configurator=idle_configurator,
            on_session_open=self._write_last_active,
        )
        if idle_configurator is not None:
            idle_configurator.set_detection_interval(settings.idle_timeout_seconds)
        self._next_flush_at = self._monotonic() + settings.flush_interval_seconds
        self._closed = False

    @property
    def settings(self) -> TrackerSettings:
        return self._tracker.settings

    @property
    def tracker(self) -> SessionTracker:
        return self._tracker

    @property
    def aggregator(self) -> StatsAggregator:
        return self._aggregator

    def submit(self, message: Message) -> Future:
        future: Future = Future()
        self._inbox.put((message, future))
        return future

    def call(self, message: Message, timeout: float = 5.0) -> Any:
        return self.submit(message).result(timeout=timeout)

    def process_pending(self) -> int:
        """Handle every queued message on the calling thread."""
        handled = 0
        while True:
            try:
                message, future = self._inbox.get_nowait()
            except queue.Empty:
                return handled
            self._handle_envelope(message, future)
            handled += 1

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        logger.info("Tracking service started; writing to %s", self.db_path)
        try:
            while not stop_event.is_set():
                try:
                    message, future = self._inbox.get(timeout=_POLL_SECONDS)
                except queue.Empty:
                    pass
                else:
                    self._handle_envelope(message, future)
                self.flush_if_due()
            self.process_pending()
        finally:
            self.shutdown()

    def flush_if_due(self) -> bool:
        now = self._monotonic()
        if now < self._next_flush_at:
            return False
        self._next_flush_at = now + self.settings.flush_interval_seconds
        self.dispatch(FlushTick())
        return True

    def shutdown(self) -> None:
        """Close the open session and make a final best-effort flush."""
        if self._closed:
            return
        self._closed = True
        try:
            self._tracker.close()
            if not self._aggregator.flush():
                logger.warning(
                    "Discarding %ds of unflushed usage at shutdown.",
                    self._aggregator.pending_seconds(),
                )
        finally:
            self._conn.close()
            logger.info("Tracking service stopped.")

    def dispatch(self, message: Message) -> Any:
        """Apply one message and return its response."""
        match message:
            case FocusGained(target_id=target_id):
                self._tracker.focus_gained(target_id)
                return self._tracker.current_session
            case FocusLost():
                self._tracker.focus_lost()
                return None
            case Navigated(target_id=target_id):
                return self._tracker.navigated(target_id)
            case TargetRemoved(target_id=target_id):
                self._tracker.target_removed(target_id)
                return self._tracker.current_session
            case IdleStateChanged(state=state):
                return self._tracker.idle_state_changed(state)
            case FlushTick():
                return self._aggregator.flush()
            case GetTodayStats():
                return {
                    "day_key": self._aggregator.current_day_key(),
                    "usage_table": self._usage_view(),
                    "settings": self.settings.to_dict(),
                }
            case SetPaused(paused=paused):
                return self._update_settings({"tracking_paused": bool(paused)})
            case GetSettings():
                return self.settings.to_dict()
            case SetSettings(values=values):
                return self._update_settings(values)
            case ExportAll():
                return self._export_all()
            case ImportSnapshot(data=data):
                return self._import_snapshot(data)
            case GetLimits():
                day_usage = self._usage_view().get(self._aggregator.current_day_key(), {})
                return evaluate_constraints(self._load_constraints(), day_usage)
            case SetConstraint(domain=domain, limit=limit, unit=unit, enabled=enabled):
                return self._set_constraint(
                    Constraint(domain.strip(), limit, LimitUnit(unit), bool(enabled))
                )
            case RemoveConstraint(domain=domain):
                return self._remove_constraint(domain)
            case GetStatus():
                return self._status()
            case _:
                raise TypeError(f"Unsupported message: {message!r}")

    def _handle_envelope(self, message: Message, future: Future) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = self.dispatch(message)
        except ValueError as exc:
            logger.warning("Rejected %s: %s", type(message).__name__, exc)
            future.set_exception(exc)
        except Exception as exc:
            logger.exception("Failed to handle %s", type(message).__name__)
            future.set_exception(exc)
        else:
            future.set_result(result)

    def _usage_view(self) -> UsageTable:
        return merge_usage(load_usage_table(self._conn), self._aggregator.snapshot())

    def _update_settings(self, values: Mapping[str, Any]) -> dict[str, Any]:
        updated = self.settings.merged(values)
        save_settings(self._conn, updated.to_dict())
        self._tracker.apply_settings(updated)
        return updated.to_dict()

    def _export_all(self) -> dict[str, Any]:
        return snapshot_from_records(fetch_all_records(self._conn), self.settings.to_dict())

    def _import_snapshot(self, data: Any) -> dict[str, Any]:
        payload = validate_snapshot(data)
        settings = self.settings
        if payload[SETTINGS_KEY] is not None:
            settings = TrackerSettings.from_mapping(payload[SETTINGS_KEY])
        replace_records(
            self._conn,
            {
                SITE_STATS_KEY: payload[SITE_STATS_KEY],
                SETTINGS_KEY: settings.to_dict(),
                LAST_ACTIVE_KEY: payload[LAST_ACTIVE_KEY],
                CONSTRAINTS_KEY: payload[CONSTRAINTS_KEY],
            },
        )
        logger.info("Imported snapshot with %d day(s).", len(payload[SITE_STATS_KEY]))
        self._tracker.apply_settings(settings)
        return settings.to_dict()

    def _load_constraints(self) -> list[Constraint]:
        constraints: list[Constraint] = []
        for domain, value in sorted(load_constraints(self._conn).items()):
            try:
                constraints.append(constraint_from_mapping(domain, value))
            except ValueError:
                logger.warning("Skipping malformed constraint for %s: %r", domain, value)
        return constraints

    def _set_constraint(self, constraint: Constraint) -> dict[str, Any]:
        if constraint.limit <= 0:
            raise ValueError("limit must be positive")
        stored = load_constraints(self._conn)
        stored[constraint.domain] = constraint.to_dict()
        save_constraints(self._conn, stored)
        return constraint.to_dict()

    def _remove_constraint(self, domain: str) -> bool:
        stored = load_constraints(self._conn)
        if stored.pop(domain, None) is None:
            return False
        save_constraints(self._conn, stored)
        return True

    def _status(self) -> dict[str, Any]:
        session = self._tracker.current_session
        return {
            "session": asdict(session) if session else None,
            "host_idle": self._tracker.host_idle,
            "pending_seconds": self._aggregator.pending_seconds(),
            "settings": self.settings.to_dict(),
        }

    def _write_last_active(self, session: Session) -> None:
        try:
            save_last_active(self._conn, LastActiveMarker.from_session(session).to_dict())
        except sqlite3.Error:
            logger.warning("Could not record last active session.", exc_info=True)
