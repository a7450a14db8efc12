import random

import pytest

from site_tracker.config import TrackerSettings
from site_tracker.db import load_usage_table
from site_tracker.tracker import SessionTracker

DAY = "2026-10-19"


@pytest.fixture
def opened():
    return []


@pytest.fixture
def tracker(registry, aggregator, clock, idle_configurator, opened):
    return SessionTracker(
        registry,
        aggregator,
        clock=clock,
        idle_configurator=idle_configurator,
        on_session_open=opened.append,
    )


def _usage(conn):
    return load_usage_table(conn).get(DAY, {})


def test_switching_targets_closes_previous_session(tracker, clock, conn):
    tracker.focus_gained(1)
    clock.advance(42)
    tracker.focus_gained(2)

    assert _usage(conn)["a.example"] == {
        "seconds": 42,
        "visits": 1,
        "pages": {"https://a.example/x": 42},
    }
    assert tracker.current_session.domain == "b.example"

    # Re-focusing A immediately leaves nothing for B.
    tracker.focus_gained(1)
    clock.advance(3)
    tracker.focus_lost()

    usage = _usage(conn)
    assert usage["a.example"]["seconds"] == 45
    assert usage["a.example"]["visits"] == 2
    assert "b.example" not in usage
    assert tracker.current_session is None


def test_idle_closes_session_and_active_opens_a_new_one(tracker, clock, conn, registry):
    registry.set_focused(1)
    tracker.focus_gained(1)
    clock.advance(10)
    tracker.idle_state_changed("idle")

    assert tracker.current_session is None
    assert _usage(conn)["a.example"]["seconds"] == 10

    clock.advance(20)
    assert tracker.focus_gained(1) is None

    session = tracker.idle_state_changed("active")
    assert session is not None
    assert session.start_time == clock()
    clock.advance(5)
    tracker.focus_lost()

    record = _usage(conn)["a.example"]
    assert record["seconds"] == 15
    assert record["visits"] == 2


def test_locked_counts_as_idle(tracker, clock, conn):
    tracker.focus_gained(1)
    clock.advance(4)
    tracker.idle_state_changed("locked")
    assert tracker.host_idle
    assert _usage(conn)["a.example"]["seconds"] == 4


def test_active_without_focused_target_stays_idle(tracker):
    tracker.idle_state_changed("idle")
    assert tracker.idle_state_changed("active") is None
    assert not tracker.host_idle


def test_navigation_reattributes_current_target(tracker, clock, conn, registry):
    tracker.focus_gained(1)
    clock.advance(5)
    registry.upsert_target(1, "https://c.example/page")
    session = tracker.navigated(1)

    assert session.domain == "c.example"
    assert session.resource == "https://c.example/page"
    assert _usage(conn)["a.example"]["pages"] == {"https://a.example/x": 5}


def test_navigation_of_background_target_is_ignored(tracker, clock, registry):
    current = tracker.focus_gained(1)
    clock.advance(5)
    registry.upsert_target(2, "https://d.example/")
    assert tracker.navigated(2) is current
    assert tracker.current_session is current


def test_navigation_to_internal_page_goes_idle(tracker, clock, registry, conn):
    tracker.focus_gained(1)
    clock.advance(2)
    registry.upsert_target(1, "chrome://newtab")
    assert tracker.navigated(1) is None
    assert _usage(conn)["a.example"]["seconds"] == 2


def test_removing_current_target_closes_session(tracker, clock, conn):
    tracker.focus_gained(1)
    clock.advance(7)
    tracker.target_removed(2)
    assert tracker.current_session is not None
    tracker.target_removed(1)
    assert tracker.current_session is None
    assert _usage(conn)["a.example"]["seconds"] == 7


def test_untrackable_or_missing_target_stays_idle(tracker, registry):
    registry.upsert_target(3, "chrome-extension://abc/options.html")
    registry.upsert_target(4, None)
    assert tracker.focus_gained(3) is None
    assert tracker.focus_gained(4) is None
    assert tracker.focus_gained(99) is None
    assert tracker.current_session is None


def test_lookup_errors_degrade_to_idle(aggregator, clock):
    class VanishingDirectory:
        def get_target(self, target_id):
            raise KeyError(target_id)

        def focused_target(self):
            raise LookupError("no window")

    tracker = SessionTracker(VanishingDirectory(), aggregator, clock=clock)
    assert tracker.focus_gained(1) is None
    assert tracker.resume_focused() is None


def test_zero_duration_session_records_no_visit(tracker, clock, aggregator, conn):
    tracker.focus_gained(1)
    clock.advance(0.9)
    assert tracker.close() == 0
    assert not aggregator.has_pending()
    assert _usage(conn) == {}


def test_close_is_idempotent(tracker, clock):
    tracker.focus_gained(1)
    clock.advance(3)
    assert tracker.close() == 3
    assert tracker.close() == 0


def test_pause_closes_and_resume_reopens_focused_target(tracker, clock, registry, conn):
    registry.set_focused(2)
    tracker.focus_gained(2)
    clock.advance(6)

    tracker.apply_settings(tracker.settings.merged({"tracking_paused": True}))
    assert tracker.current_session is None
    assert _usage(conn)["b.example"]["seconds"] == 6
    assert tracker.focus_gained(1) is None

    tracker.apply_settings(tracker.settings.merged({"tracking_paused": False}))
    assert tracker.current_session.target_id == 2


def test_host_active_while_paused_stays_idle(tracker, clock, registry, conn):
    registry.set_focused(1)
    tracker.focus_gained(1)
    clock.advance(4)
    tracker.apply_settings(tracker.settings.merged({"tracking_paused": True}))
    tracker.idle_state_changed("idle")
    clock.advance(30)

    assert tracker.idle_state_changed("active") is None
    assert tracker.current_session is None
    assert not tracker.host_idle
    assert _usage(conn)["a.example"]["seconds"] == 4


def test_unpause_while_host_idle_waits_for_active(tracker, clock, registry, opened):
    registry.set_focused(2)
    tracker.idle_state_changed("idle")
    tracker.apply_settings(tracker.settings.merged({"tracking_paused": True}))
    tracker.apply_settings(tracker.settings.merged({"tracking_paused": False}))

    assert tracker.current_session is None
    assert tracker.focus_gained(2) is None
    assert opened == []

    clock.advance(9)
    session = tracker.idle_state_changed("active")
    assert session.target_id == 2
    assert session.start_time == clock()


def test_idle_timeout_change_reconfigures_detection(tracker, idle_configurator):
    tracker.apply_settings(tracker.settings.merged({"retention_days": 10}))
    assert idle_configurator.intervals == []
    tracker.apply_settings(tracker.settings.merged({"idle_timeout_seconds": 300}))
    assert idle_configurator.intervals == [300]


def test_session_open_hook_receives_each_session(tracker, opened):
    tracker.focus_gained(1)
    tracker.focus_gained(2)
    assert [session.target_id for session in opened] == [1, 2]


def test_paused_settings_at_construction_block_sessions(registry, aggregator, clock):
    tracker = SessionTracker(
        registry, aggregator, clock=clock, settings=TrackerSettings(tracking_paused=True)
    )
    assert tracker.focus_gained(1) is None


@pytest.mark.parametrize("seed", [1, 7, 2024])
def test_random_signal_sequences_conserve_time(seed, tracker, clock, registry, conn):
    rng = random.Random(seed)
    registry.upsert_target(3, "https://a.example/other")
    registry.upsert_target(4, "about:blank")
    expected_seconds = 0
    expected_visits = 0

    for _ in range(300):
        before = tracker.current_session
        clock.advance(rng.choice([0, 0.4, 1, 2.5, 7, 30]))
        action = rng.choice(["focus", "focus", "lost", "navigate", "remove", "idle", "active"])
        target = rng.choice([1, 2, 3, 4, 5])
        if action == "focus":
            registry.set_focused(target)
            tracker.focus_gained(target)
        elif action == "lost":
            tracker.focus_lost()
        elif action == "navigate":
            tracker.navigated(target)
        elif action == "remove":
            tracker.target_removed(target)
        elif action == "idle":
            tracker.idle_state_changed("idle")
        else:
            tracker.idle_state_changed("active")

        after = tracker.current_session
        if before is not None and after is not before:
            duration = int(clock() - before.start_time)
            if duration > 0:
                expected_seconds += duration
                expected_visits += 1

    last = tracker.current_session
    clock.advance(5)
    tracker.focus_lost()
    if last is not None:
        expected_seconds += int(clock() - last.start_time)
        expected_visits += 1

    usage = _usage(conn)
    assert sum(record["seconds"] for record in usage.values()) == expected_seconds
    assert sum(record["visits"] for record in usage.values()) == expected_visits
    for record in usage.values():
        assert sum(record["pages"].values()) == record["seconds"]
