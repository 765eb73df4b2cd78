from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence

import mysql.connector

from ..common.validators import as_float
from ..core.enums import LocationSource
from ..database.connection import DatabaseConnection
from ..database.mysql_base import (
    db_cursor,
    fetchall,
    fetchone,
    from_db_datetime,
    is_duplicate_key,
    to_db_datetime,
)
from ..geo.model import GeoFix
from .errors import AlreadyClockedIn
from .model import ClockSession, derive_state
from .repository import SessionRepository

_SESSION_COLUMNS = """
    entry_id, personnel_id, project_id, clock_in_at, clock_out_at,
    lunch_start_at, lunch_end_at, lunch_duration_minutes,
    clock_in_lat, clock_in_lng, clock_in_accuracy, clock_in_source, clock_in_captured_at, clock_in_error,
    clock_out_lat, clock_out_lng, clock_out_accuracy, clock_out_source, clock_out_captured_at, clock_out_error,
    clock_blocked_until, hours, last_location_check_at, auto_clocked_out, auto_clock_out_reason
"""

_OPEN = "clock_in_at IS NOT NULL AND clock_out_at IS NULL"


def _location(r: Mapping[str, Any], prefix: str) -> GeoFix:
    source = r.get(f"{prefix}_source")
    return GeoFix(
        lat=as_float(r.get(f"{prefix}_lat")),
        lng=as_float(r.get(f"{prefix}_lng")),
        accuracy=as_float(r.get(f"{prefix}_accuracy")),
        source=LocationSource(source) if source else None,
        captured_at=from_db_datetime(r.get(f"{prefix}_captured_at")),
        error=r.get(f"{prefix}_error"),
    )


def _location_params(fix: GeoFix) -> tuple:
    return (
        fix.lat,
        fix.lng,
        fix.accuracy,
        fix.source.value if fix.source else None,
        to_db_datetime(fix.captured_at),
        fix.error[:255] if fix.error else None,
    )


def _to_session(r: Mapping[str, Any]) -> ClockSession:
    clock_out_at = from_db_datetime(r.get("clock_out_at"))
    lunch_start_at = from_db_datetime(r.get("lunch_start_at"))
    lunch_end_at = from_db_datetime(r.get("lunch_end_at"))
    return ClockSession(
        session_id=int(r["entry_id"]),
        person_id=int(r["personnel_id"]),
        project_id=int(r["project_id"]),
        clock_in_at=from_db_datetime(r["clock_in_at"]),
        state=derive_state(clock_out_at, lunch_start_at, lunch_end_at),
        clock_out_at=clock_out_at,
        lunch_start_at=lunch_start_at,
        lunch_end_at=lunch_end_at,
        lunch_duration_minutes=int(r.get("lunch_duration_minutes") or 0),
        clock_in_location=_location(r, "clock_in"),
        clock_out_location=_location(r, "clock_out"),
        clock_blocked_until=from_db_datetime(r.get("clock_blocked_until")),
        hours=as_float(r.get("hours")) if clock_out_at else None,
        last_location_check_at=from_db_datetime(r.get("last_location_check_at")),
        auto_clocked_out=bool(r.get("auto_clocked_out")),
        auto_clock_out_reason=r.get("auto_clock_out_reason"),
    )


class MySQLSessionRepository(SessionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _select_one(self, cur, where: str, params: tuple) -> Optional[ClockSession]:
        cur.execute(f"SELECT {_SESSION_COLUMNS} FROM time_entries WHERE {where}", params)
        r = fetchone(cur)
        return _to_session(r) if r else None

    def get_by_id(self, session_id: int) -> Optional[ClockSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            return self._select_one(cur, "entry_id=%s AND clock_in_at IS NOT NULL", (int(session_id),))

    def get_open_for_person(self, person_id: int) -> Optional[ClockSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            return self._select_one(cur, f"personnel_id=%s AND {_OPEN}", (int(person_id),))

    def list_open(self) -> Sequence[ClockSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_SESSION_COLUMNS} FROM time_entries WHERE {_OPEN} ORDER BY clock_in_at")
            return [_to_session(r) for r in fetchall(cur)]

    def get_block_until(self, person_id: int) -> Optional[datetime]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT MAX(clock_blocked_until) AS blocked_until FROM time_entries WHERE personnel_id=%s",
                (int(person_id),),
            )
            r = fetchone(cur)
            return from_db_datetime(r.get("blocked_until")) if r else None

    def create_open(
        self,
        *,
        person_id: int,
        project_id: int,
        clock_in_at: datetime,
        location: GeoFix,
        entry_date: Optional[date] = None,
    ) -> ClockSession:
        entry_date = entry_date or clock_in_at.date()
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    f"""
                    INSERT INTO time_entries (
                        personnel_id, project_id, entry_date, entry_source, status, clock_in_at,
                        clock_in_lat, clock_in_lng, clock_in_accuracy, clock_in_source,
                        clock_in_captured_at, clock_in_error,
                        hours, regular_hours, overtime_hours, is_on_lunch, lunch_duration_minutes
                    )
                    SELECT %s, %s, %s, 'clock', 'pending', %s, %s, %s, %s, %s, %s, %s, 0, 0, 0, 0, 0
                    FROM DUAL
                    WHERE NOT EXISTS (
                        SELECT 1 FROM (SELECT entry_id FROM time_entries WHERE personnel_id=%s AND {_OPEN}) AS open_entries
                    )
                    """,
                    (
                        int(person_id),
                        int(project_id),
                        entry_date,
                        to_db_datetime(clock_in_at),
                        *_location_params(location),
                        int(person_id),
                    ),
                )
                if cur.rowcount == 0:
                    existing = self._select_one(cur, f"personnel_id=%s AND {_OPEN}", (int(person_id),))
                    raise AlreadyClockedIn(existing.project_id if existing else None)
                return self._select_one(cur, "entry_id=%s", (int(cur.lastrowid),))
        except mysql.connector.Error as e:
            if is_duplicate_key(e):
                raise AlreadyClockedIn() from e
            raise

    def start_lunch(self, *, session_id: int, at: datetime) -> Optional[ClockSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE time_entries
                SET lunch_start_at=%s, is_on_lunch=1
                WHERE entry_id=%s AND {_OPEN} AND lunch_start_at IS NULL
                """,
                (to_db_datetime(at), int(session_id)),
            )
            if cur.rowcount == 0:
                return None
            return self._select_one(cur, "entry_id=%s", (int(session_id),))

    def end_lunch(self, *, session_id: int, at: datetime, minutes: int) -> Optional[ClockSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE time_entries
                SET lunch_end_at=%s, lunch_duration_minutes=lunch_duration_minutes + %s, is_on_lunch=0
                WHERE entry_id=%s AND {_OPEN} AND lunch_start_at IS NOT NULL AND lunch_end_at IS NULL
                """,
                (to_db_datetime(at), int(minutes), int(session_id)),
            )
            if cur.rowcount == 0:
                return None
            return self._select_one(cur, "entry_id=%s", (int(session_id),))

    def close(
        self,
        *,
        session_id: int,
        clock_out_at: datetime,
        location: GeoFix,
        hours: float,
        lunch_duration_minutes: int,
        lunch_end_at: Optional[datetime] = None,
        hourly_rate: Optional[float] = None,
        is_holiday: bool = False,
        auto_reason: Optional[str] = None,
        blocked_until: Optional[datetime] = None,
    ) -> Optional[ClockSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE time_entries
                SET clock_out_at=%s,
                    clock_out_lat=%s, clock_out_lng=%s, clock_out_accuracy=%s, clock_out_source=%s,
                    clock_out_captured_at=%s, clock_out_error=%s,
                    hours=%s, regular_hours=%s, overtime_hours=0,
                    lunch_duration_minutes=%s, lunch_end_at=COALESCE(%s, lunch_end_at), is_on_lunch=0,
                    hourly_rate=%s, is_holiday=%s,
                    auto_clocked_out=%s, auto_clock_out_reason=%s,
                    clock_blocked_until=COALESCE(%s, clock_blocked_until)
                WHERE entry_id=%s AND {_OPEN}
                """,
                (
                    to_db_datetime(clock_out_at),
                    *_location_params(location),
                    hours,
                    hours,
                    int(lunch_duration_minutes),
                    to_db_datetime(lunch_end_at),
                    hourly_rate,
                    1 if is_holiday else 0,
                    1 if auto_reason else 0,
                    auto_reason,
                    to_db_datetime(blocked_until),
                    int(session_id),
                ),
            )
            if cur.rowcount == 0:
                return None
            return self._select_one(cur, "entry_id=%s", (int(session_id),))

    def record_location_check(self, *, session_id: int, lat: float, lng: float, at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE time_entries
                SET last_location_lat=%s, last_location_lng=%s, last_location_check_at=%s
                WHERE entry_id=%s AND {_OPEN}
                """,
                (lat, lng, to_db_datetime(at), int(session_id)),
            )
            return cur.rowcount > 0
