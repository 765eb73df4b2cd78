from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from src.timeclock.timeclock.core.enums import SessionState
from src.timeclock.timeclock.geo.model import GeoFix
from src.timeclock.timeclock.monitor.location_monitor import LocationMonitor, should_monitor
from src.timeclock.timeclock.sessions.model import ClockSession

from tests.fakes import SITE, FixedAcquirer, project, utc

T0 = utc(2026, 3, 2, 8, 0)
MONITORED = project(1, require_clock_location=True, geofence=SITE)


def open_session(**kwargs):
    return ClockSession(session_id=1, person_id=7, project_id=1, clock_in_at=T0, **kwargs)


def make_monitor(fix):
    samples, drifts = [], []
    monitor = LocationMonitor(FixedAcquirer(fix), throttle_seconds=30)
    monitor.on_sample(samples.append)
    monitor.on_drift(drifts.append)
    return monitor, samples, drifts


def test_only_open_working_location_required_sessions_are_monitored():
    assert should_monitor(open_session(), MONITORED, T0)
    assert not should_monitor(open_session(state=SessionState.ON_LUNCH), MONITORED, T0)
    assert not should_monitor(open_session(state=SessionState.NOT_CLOCKED), MONITORED, T0)
    assert not should_monitor(open_session(clock_blocked_until=T0 + timedelta(hours=1)), MONITORED, T0)
    assert not should_monitor(open_session(), project(1, geofence=SITE), T0)
    assert not should_monitor(open_session(), project(1, require_clock_location=True), T0)


def test_sample_inside_site_emits_sample_only():
    monitor, samples, drifts = make_monitor(GeoFix.fix(30.0005, -97.0))
    result = monitor.sample(open_session(), MONITORED, T0)

    assert result.check.within
    assert not result.outside
    assert samples == [result]
    assert drifts == []


def test_sample_outside_site_emits_drift():
    monitor, _, drifts = make_monitor(GeoFix.fix(30.005, -97.0))
    monitor.sample(open_session(), MONITORED, T0)

    (event,) = drifts
    assert event.session_id == 1
    assert event.distance_miles == pytest.approx(0.345, abs=0.002)
    assert event.radius_miles == 0.25
    assert event.detected_at == T0


def test_samples_are_throttled_per_session():
    monitor, samples, _ = make_monitor(GeoFix.fix(30.0, -97.0))

    assert monitor.sample(open_session(), MONITORED, T0) is not None
    assert monitor.sample(open_session(), MONITORED, T0 + timedelta(seconds=10)) is None
    assert monitor.sample(open_session(), MONITORED, T0 + timedelta(seconds=31)) is not None
    assert len(samples) == 2


def test_device_reported_fix_is_used_instead_of_acquirer():
    acquirer = FixedAcquirer(GeoFix.fix(30.0, -97.0))
    drifts = []
    monitor = LocationMonitor(acquirer)
    monitor.on_drift(drifts.append)

    monitor.sample(open_session(), MONITORED, T0, fix=GeoFix.fix(30.005, -97.0))

    assert acquirer.calls == 0
    assert len(drifts) == 1


def test_failed_fix_produces_sample_without_check():
    monitor, samples, drifts = make_monitor(GeoFix.failure("timeout"))
    result = monitor.sample(open_session(), MONITORED, T0)

    assert result.check is None
    assert samples == []
    assert drifts == []


def test_listener_failure_does_not_stop_other_listeners():
    monitor, _, drifts = make_monitor(GeoFix.fix(30.005, -97.0))

    def broken(_):
        raise RuntimeError("boom")

    monitor.on_drift(broken)
    monitor.on_drift(drifts.append)
    monitor.sample(open_session(), MONITORED, T0)

    assert len(drifts) == 2


def test_device_reports_for_many_sessions_keep_throttle_state_small():
    monitor = LocationMonitor(throttle_seconds=30)

    for i in range(500):
        session = replace(open_session(), session_id=i + 1)
        assert monitor.sample(session, MONITORED, T0 + timedelta(seconds=i), fix=GeoFix.fix(30.0, -97.0)) is not None

    assert monitor.tracked_sessions <= 31


def test_session_leaving_monitoring_is_forgotten():
    monitor = LocationMonitor(throttle_seconds=30)
    session = open_session()

    monitor.sample(session, MONITORED, T0, fix=GeoFix.fix(30.0, -97.0))
    assert monitor.tracked_sessions == 1

    assert monitor.sample(open_session(state=SessionState.ON_LUNCH), MONITORED, T0 + timedelta(seconds=5)) is None
    assert monitor.tracked_sessions == 0

    # back from lunch: not throttled by the sample taken before it
    assert monitor.sample(session, MONITORED, T0 + timedelta(seconds=10), fix=GeoFix.fix(30.0, -97.0)) is not None
