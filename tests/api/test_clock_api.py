from __future__ import annotations

from datetime import date
from types import SimpleNamespace

import pytest
from flask import Flask

from src.timeclock.timeclock.geo.acquirer import SubmittedFixAcquirer
from src.timeclock.timeclock.monitor.location_monitor import LocationMonitor
from src.timeclock.timeclock.payroll.controller import register as register_payroll
from src.timeclock.timeclock.payroll.model import WorkedHourRecord
from src.timeclock.timeclock.payroll.service import PayrollReportService
from src.timeclock.timeclock.personnel.model import Person
from src.timeclock.timeclock.sessions.controller import register as register_sessions
from src.timeclock.timeclock.sessions.enforcement import AutoClockOutService
from src.timeclock.timeclock.sessions.service import ClockSessionManager

from tests.fakes import (
    SITE,
    InMemoryPersonnel,
    InMemoryProjects,
    InMemorySchedules,
    InMemorySessions,
    RecordingNotifier,
    StaticSettings,
    project,
    utc,
)

NOW = utc(2026, 3, 2, 8, 30)


class FakeEntries:
    def __init__(self, records):
        self._records = records

    def list_records(self, *, start, end, person_id=None, project_id=None):
        return [r for r in self._records if start <= r.entry_date <= end]


@pytest.fixture()
def app():
    sessions = InMemorySessions()
    projects = InMemoryProjects(
        {
            1: project(1),
            2: project(2, require_clock_location=True, geofence=SITE),
            3: project(3, time_clock_enabled=False),
        }
    )
    notifier = RecordingNotifier()
    manager = ClockSessionManager(
        sessions,
        projects,
        InMemoryPersonnel({7: Person(7, "Ana", "Lopez", hourly_rate=20.0)}),
        InMemorySchedules({(7, 1, date(2026, 3, 2)): "08:00:00"}),
        notifier=notifier,
        clock=lambda: NOW,
    )
    auto = AutoClockOutService(manager, sessions, projects, notifier=notifier)
    monitor = LocationMonitor(throttle_seconds=0)
    monitor.on_sample(auto.handle_sample)
    monitor.on_drift(auto.handle_drift)

    records = [
        WorkedHourRecord(1, 7, 1, date(2026, 3, 2), 44, hourly_rate=20.0, person_name="Ana Lopez"),
        WorkedHourRecord(2, 7, 1, date(2026, 3, 3), 8, is_holiday=True, hourly_rate=20.0, person_name="Ana Lopez"),
    ]
    container = SimpleNamespace(
        clock_manager=manager,
        sessions_repo=sessions,
        projects_repo=projects,
        location_monitor=monitor,
        location_source=lambda geo, ip=None: SubmittedFixAcquirer(geo) if geo else None,
        payroll_report_service=PayrollReportService(FakeEntries(records), StaticSettings()),
    )

    flask_app = Flask(__name__)
    flask_app.secret_key = "test"
    register_sessions(flask_app, container)
    register_payroll(flask_app, container)
    return flask_app


@pytest.fixture()
def client(app):
    c = app.test_client()
    with c.session_transaction() as s:
        s["personnel_id"] = 7
    return c


def test_requests_without_login_are_rejected(app):
    resp = app.test_client().post("/api/clock/in", json={"project_id": 1})
    assert resp.status_code == 401
    assert resp.get_json()["success"] is False


def test_clock_in_then_open_session_then_clock_out(client):
    resp = client.post("/api/clock/in", json={"project_id": 1, "skip_schedule_check": True})
    assert resp.status_code == 201
    session_id = resp.get_json()["session"]["session_id"]

    state = client.get("/api/clock/open").get_json()
    assert state["state"] == "WORKING"
    assert state["session"]["session_id"] == session_id
    assert state["elapsed_seconds"] >= 0

    out = client.post("/api/clock/out", json={"session_id": session_id})
    assert out.status_code == 200
    assert out.get_json()["record"]["record_id"] == session_id
    assert client.get("/api/clock/open").get_json()["state"] == "NOT_CLOCKED"


def test_second_clock_in_is_conflict_with_refresh(client):
    client.post("/api/clock/in", json={"project_id": 1, "skip_schedule_check": True})
    resp = client.post("/api/clock/in", json={"project_id": 2, "geo_data": {"lat": 30.0, "lng": -97.0}})

    body = resp.get_json()
    assert resp.status_code == 409
    assert body["error"]["code"] == "ALREADY_CLOCKED_IN"
    assert body["error"]["open_project_id"] == 1
    assert body["message"] == "ALREADY_CLOCKED_IN"
    assert body["refresh"] is True


def test_late_clock_in_keeps_legacy_message(client):
    resp = client.post("/api/clock/in", json={"project_id": 1})

    body = resp.get_json()
    assert resp.status_code == 403
    assert body["error"]["kind"] == "LateClockInBlocked"
    assert body["message"] == "LATE_CLOCK_IN_BLOCKED:30:08:00:00"
    assert body["error"]["scheduled_time"] == "08:00:00"


def test_location_required_without_fix_is_retryable(client):
    resp = client.post("/api/clock/in", json={"project_id": 2})
    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "LOCATION_REQUIRED_DENIED"


def test_disabled_project_and_bad_input(client):
    assert client.post("/api/clock/in", json={"project_id": 3}).status_code == 403
    assert client.post("/api/clock/in", json={"project_id": "abc"}).status_code == 400
    assert client.post("/api/clock/in", json={"project_id": 99}).status_code == 404


def test_lunch_round_trip_and_retry(client):
    session_id = client.post("/api/clock/in", json={"project_id": 1, "skip_schedule_check": True}).get_json()[
        "session"
    ]["session_id"]

    assert client.post("/api/clock/lunch/start", json={"session_id": session_id}).status_code == 200
    assert client.get("/api/clock/open").get_json()["state"] == "ON_LUNCH"
    assert client.post("/api/clock/lunch/end", json={"session_id": session_id}).status_code == 200

    retry = client.post("/api/clock/lunch/end", json={"session_id": session_id})
    assert retry.status_code == 409
    assert retry.get_json()["error"]["code"] == "NOT_ON_LUNCH"

    bad = client.post("/api/clock/lunch/end", json={"session_id": session_id, "lunch_start_at": "yesterday"})
    assert bad.status_code == 400


def test_location_report_outside_site_auto_clocks_out(client):
    resp = client.post("/api/clock/in", json={"project_id": 2, "geo_data": {"lat": 30.0, "lng": -97.0}})
    session_id = resp.get_json()["session"]["session_id"]

    inside = client.post("/api/clock/location", json={"session_id": session_id, "lat": 30.0001, "lng": -97.0})
    assert inside.get_json()["auto_clocked_out"] is False
    assert inside.get_json()["within"] is True

    outside = client.post("/api/clock/location", json={"session_id": session_id, "lat": 30.005, "lng": -97.0})
    body = outside.get_json()
    assert body["auto_clocked_out"] is True
    assert body["session"]["auto_clock_out_reason"].startswith("Left job site")

    again = client.post("/api/clock/in", json={"project_id": 1, "skip_schedule_check": True})
    assert again.status_code == 403
    assert again.get_json()["error"]["code"] == "CLOCK_BLOCKED"


def test_location_report_needs_valid_coordinates(client):
    session_id = client.post("/api/clock/in", json={"project_id": 1, "skip_schedule_check": True}).get_json()[
        "session"
    ]["session_id"]
    assert client.post("/api/clock/location", json={"session_id": session_id, "lat": "x"}).status_code == 400
    assert client.post("/api/clock/location", json={"session_id": 999, "lat": 30, "lng": -97}).status_code == 409


def test_time_report_and_weekly_totals(client):
    report = client.get("/api/time/report?start=2026-03-02&end=2026-03-08&view=person").get_json()
    assert report["success"] is True
    assert report["report"]["totals"]["total_cost"] == 1240

    weekly = client.get("/api/time/weekly?week_of=2026-03-04").get_json()
    assert weekly["people"][0]["overtime_hours"] == 4


def test_time_report_rejects_bad_arguments(client):
    assert client.get("/api/time/report?start=03/02/2026").status_code == 400
    assert client.get("/api/time/report?view=tree").status_code == 400
    assert client.get("/api/time/report?start=2024-01-01&end=2026-01-01").status_code == 400
