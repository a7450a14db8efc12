"""Shared fixtures for the site tracker tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from site_tracker.aggregator import StatsAggregator
from site_tracker.db import open_database
from site_tracker.host import HostRegistry
from site_tracker.service import TrackingService

START = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc).timestamp()


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = START) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class RecordingIdleConfigurator:
    def __init__(self) -> None:
        self.intervals: list[int] = []

    def set_detection_interval(self, seconds: int) -> None:
        self.intervals.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "usage.sqlite3"


@pytest.fixture
def conn(db_path):
    connection = open_database(db_path)
    try:
        yield connection
    finally:
        connection.close()


@pytest.fixture
def aggregator(conn, clock) -> StatsAggregator:
    return StatsAggregator(conn, clock=clock)


@pytest.fixture
def registry() -> HostRegistry:
    host = HostRegistry()
    host.upsert_target(1, "https://a.example/x", window_id=10)
    host.upsert_target(2, "https://b.example/y", window_id=10)
    return host


@pytest.fixture
def idle_configurator() -> RecordingIdleConfigurator:
    return RecordingIdleConfigurator()


@pytest.fixture
def monotonic() -> FakeClock:
    return FakeClock(start=1000.0)


@pytest.fixture
def service(db_path, registry, clock, monotonic, idle_configurator):
    svc = TrackingService(
        db_path,
        registry,
        idle_configurator=idle_configurator,
        clock=clock,
        monotonic=monotonic,
    )
    try:
        yield svc
    finally:
        svc.shutdown()
