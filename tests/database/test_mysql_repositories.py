from __future__ import annotations

from datetime import date, datetime, timedelta

import mysql.connector
import pytest
from mysql.connector import errorcode

from src.timeclock.timeclock.core.enums import LocationSource, SessionState
from src.timeclock.timeclock.database.bootstrap import split_sql_statements
from src.timeclock.timeclock.database.mysql_base import normalize_mysql_time
from src.timeclock.timeclock.geo.model import GeoFix
from src.timeclock.timeclock.payroll.mysql_payroll_repository import (
    MySQLPayrollSettingsRepository,
    MySQLTimeEntryRepository,
    MySQLWeekCloseoutRepository,
)
from src.timeclock.timeclock.projects.mysql_project_repository import MySQLProjectRepository
from src.timeclock.timeclock.sessions.errors import AlreadyClockedIn
from src.timeclock.timeclock.sessions.mysql_session_repository import MySQLSessionRepository

from tests.fakes import utc


class FakeCursor:
    """Replays scripted rows; each ``execute`` consumes one result."""

    def __init__(self, results, error=None):
        self._results = list(results)
        self._error = error
        self._current = None
        self.executed = []
        self.rowcount = 0
        self.lastrowid = 0

    def execute(self, sql, params=None):
        self.executed.append((" ".join(sql.split()), params))
        if self._error is not None:
            raise self._error
        result = self._results.pop(0) if self._results else []
        if isinstance(result, int):
            self.rowcount = result
            self._current = []
        else:
            self._current = result
            self.rowcount = len(result)

    def fetchone(self):
        return self._current[0] if self._current else None

    def fetchall(self):
        return self._current

    def close(self):
        pass


class FakeConnection:
    def __init__(self, cursor):
        self._cursor = cursor
        self.committed = False
        self.rolled_back = False

    def cursor(self, dictionary=True):
        return self._cursor

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        pass


class FakeConnFactory:
    def __init__(self, results=(), error=None, lastrowid=0):
        self.cursor = FakeCursor(results, error)
        self.cursor.lastrowid = lastrowid
        self.connection = FakeConnection(self.cursor)

    def connect(self):
        return self.connection


def session_row(**overrides):
    row = {
        "entry_id": 5,
        "personnel_id": 7,
        "project_id": 1,
        "clock_in_at": datetime(2026, 3, 2, 14, 0),
        "clock_out_at": None,
        "lunch_start_at": None,
        "lunch_end_at": None,
        "lunch_duration_minutes": 0,
        "clock_in_lat": 30.0,
        "clock_in_lng": -97.0,
        "clock_in_accuracy": 12.0,
        "clock_in_source": "device",
        "clock_in_captured_at": datetime(2026, 3, 2, 13, 59),
        "clock_in_error": None,
        "hours": 0,
        "clock_blocked_until": None,
        "auto_clocked_out": 0,
    }
    row.update(overrides)
    return row


def test_session_row_maps_to_aware_domain_session():
    factory = FakeConnFactory([[session_row(lunch_start_at=datetime(2026, 3, 2, 18, 0))]])
    session = MySQLSessionRepository(factory).get_by_id(5)

    assert session.clock_in_at == utc(2026, 3, 2, 14, 0)
    assert session.state == SessionState.ON_LUNCH
    assert session.clock_in_location.source == LocationSource.DEVICE
    assert session.clock_in_location.captured_at == utc(2026, 3, 2, 13, 59)
    assert session.hours is None
    assert factory.connection.committed


def test_create_open_refused_when_person_already_has_open_session():
    factory = FakeConnFactory([0, [session_row(entry_id=3, project_id=9)]])

    with pytest.raises(AlreadyClockedIn) as exc:
        MySQLSessionRepository(factory).create_open(
            person_id=7, project_id=1, clock_in_at=utc(2026, 3, 2, 14, 0), location=GeoFix()
        )

    assert exc.value.open_project_id == 9
    assert factory.connection.rolled_back
    sql, params = factory.cursor.executed[0]
    assert "WHERE NOT EXISTS" in sql
    assert params[3] == datetime(2026, 3, 2, 14, 0)


def test_create_open_duplicate_key_maps_to_already_clocked_in():
    dup = mysql.connector.IntegrityError(msg="Duplicate entry", errno=errorcode.ER_DUP_ENTRY)
    factory = FakeConnFactory(error=dup)

    with pytest.raises(AlreadyClockedIn):
        MySQLSessionRepository(factory).create_open(
            person_id=7, project_id=1, clock_in_at=utc(2026, 3, 2, 14, 0), location=GeoFix()
        )


def test_create_open_returns_inserted_session():
    factory = FakeConnFactory([1, [session_row()]], lastrowid=5)
    session = MySQLSessionRepository(factory).create_open(
        person_id=7,
        project_id=1,
        clock_in_at=utc(2026, 3, 2, 14, 0),
        location=GeoFix.fix(30.0, -97.0, accuracy=12.0),
        entry_date=date(2026, 3, 2),
    )

    assert session.session_id == 5
    assert factory.cursor.executed[1][1] == (5,)


def test_conditional_end_lunch_returns_none_when_nothing_matched():
    factory = FakeConnFactory([0])
    assert MySQLSessionRepository(factory).end_lunch(session_id=5, at=utc(2026, 3, 2, 18, 30), minutes=30) is None
    assert "lunch_end_at IS NULL" in factory.cursor.executed[0][0]


def test_close_writes_hours_and_auto_clock_out_fields():
    closed_row = session_row(
        clock_out_at=datetime(2026, 3, 2, 22, 0),
        hours=8.0,
        auto_clocked_out=1,
        auto_clock_out_reason="Left job site",
    )
    factory = FakeConnFactory([1, [closed_row]])
    blocked = utc(2026, 3, 3, 6, 0)

    session = MySQLSessionRepository(factory).close(
        session_id=5,
        clock_out_at=utc(2026, 3, 2, 22, 0),
        location=GeoFix.failure("timeout"),
        hours=8.0,
        lunch_duration_minutes=0,
        hourly_rate=20.0,
        auto_reason="Left job site",
        blocked_until=blocked,
    )

    assert session.state == SessionState.NOT_CLOCKED
    assert session.hours == 8.0
    assert session.auto_clocked_out is True
    params = factory.cursor.executed[0][1]
    assert "timeout" in params
    assert blocked.replace(tzinfo=None) in params


def test_block_until_is_latest_across_sessions():
    factory = FakeConnFactory([[{"blocked_until": datetime(2026, 3, 3, 6, 0)}]])
    assert MySQLSessionRepository(factory).get_block_until(7) == utc(2026, 3, 3, 6, 0)


def test_time_entry_rows_map_to_worked_hour_records():
    factory = FakeConnFactory(
        [
            [
                {
                    "entry_id": 11,
                    "personnel_id": 7,
                    "project_id": 1,
                    "entry_date": date(2026, 3, 2),
                    "hours": "7.5000",
                    "is_holiday": 1,
                    "regular_hours": None,
                    "overtime_hours": None,
                    "hourly_rate": None,
                    "first_name": "Ana",
                    "last_name": "Lopez",
                    "person_rate": "20.00",
                    "project_name": "Main St",
                }
            ]
        ]
    )
    (record,) = MySQLTimeEntryRepository(factory).list_records(
        start=date(2026, 3, 2), end=date(2026, 3, 8), person_id=7
    )

    assert record.hours == 7.5
    assert record.is_holiday is True
    assert record.person_rate == 20.0
    assert record.person_name == "Ana Lopez"
    assert factory.cursor.executed[0][1] == (date(2026, 3, 2), date(2026, 3, 8), 7)


def test_missing_company_settings_use_defaults():
    settings = MySQLPayrollSettingsRepository(FakeConnFactory([[]])).get_settings()
    assert settings.overtime_multiplier == 1.5
    assert settings.weekly_overtime_threshold == 40.0


def test_closed_weeks_are_project_week_pairs():
    factory = FakeConnFactory([[{"project_id": 3, "week_start_date": date(2026, 3, 2)}]])
    closed = MySQLWeekCloseoutRepository(factory).closed_weeks(start=date(2026, 3, 4), end=date(2026, 3, 8))

    assert closed == {(3, date(2026, 3, 2))}
    assert factory.cursor.executed[0][1] == (date(2026, 3, 2), date(2026, 3, 8))


def test_project_without_site_has_no_geofence():
    factory = FakeConnFactory(
        [
            [
                {
                    "project_id": 1,
                    "name": "Main St",
                    "time_clock_enabled": 1,
                    "require_clock_location": 1,
                    "site_lat": None,
                    "site_lng": None,
                    "geofence_radius_miles": None,
                }
            ]
        ]
    )
    p = MySQLProjectRepository(factory).get_by_id(1)
    assert p.require_clock_location is True
    assert p.geofence is None
    assert p.geofence_mode.value == "UNVERIFIED"


def test_split_sql_ignores_semicolons_in_strings_and_comments():
    sql = """
    -- schema; with a comment
    CREATE TABLE a (note VARCHAR(10) DEFAULT 'x;y');
    INSERT INTO a VALUES ('it''s');
    """
    statements = list(split_sql_statements(sql))
    assert len(statements) == 2
    assert statements[0].startswith("CREATE TABLE a")
    assert "'x;y'" in statements[0]


def test_normalize_mysql_time_variants():
    assert normalize_mysql_time(timedelta(hours=8, minutes=30)).strftime("%H:%M:%S") == "08:30:00"
    assert normalize_mysql_time("07:05").minute == 5
    assert normalize_mysql_time(None) is None
