from __future__ import annotations

from datetime import date
from typing import Optional, Sequence

from ..common.datetime_utils import week_start
from ..common.validators import as_float
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import CompanyPayrollSettings, WorkedHourRecord
from .repository import HolidayCalendar, PayrollSettingsRepository, TimeEntryRepository, WeekCloseoutRepository


class MySQLTimeEntryRepository(TimeEntryRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def list_records(
        self,
        *,
        start: date,
        end: date,
        person_id: Optional[int] = None,
        project_id: Optional[int] = None,
    ) -> Sequence[WorkedHourRecord]:
        where = ["t.entry_date BETWEEN %s AND %s", "(t.clock_in_at IS NULL OR t.clock_out_at IS NOT NULL)"]
        params: list = [start, end]
        if person_id is not None:
            where.append("t.personnel_id=%s")
            params.append(int(person_id))
        if project_id is not None:
            where.append("t.project_id=%s")
            params.append(int(project_id))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT t.entry_id, t.personnel_id, t.project_id, t.entry_date, t.hours, t.is_holiday,
                       t.regular_hours, t.overtime_hours, t.hourly_rate,
                       p.first_name, p.last_name, p.hourly_rate AS person_rate,
                       pr.name AS project_name
                FROM time_entries t
                JOIN personnel p ON p.personnel_id = t.personnel_id
                JOIN projects pr ON pr.project_id = t.project_id
                WHERE {" AND ".join(where)}
                ORDER BY t.entry_date, t.entry_id
                """,
                tuple(params),
            )
            return [
                WorkedHourRecord(
                    record_id=int(r["entry_id"]),
                    person_id=int(r["personnel_id"]),
                    project_id=int(r["project_id"]),
                    entry_date=r["entry_date"],
                    hours=as_float(r.get("hours")) or 0.0,
                    is_holiday=bool(r.get("is_holiday")),
                    regular_hours=as_float(r.get("regular_hours")),
                    overtime_hours=as_float(r.get("overtime_hours")),
                    hourly_rate=as_float(r.get("hourly_rate")),
                    person_rate=as_float(r.get("person_rate")),
                    person_name=f"{r.get('first_name') or ''} {r.get('last_name') or ''}".strip(),
                    project_name=r.get("project_name"),
                )
                for r in fetchall(cur)
            ]


class MySQLPayrollSettingsRepository(PayrollSettingsRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_settings(self) -> CompanyPayrollSettings:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT overtime_multiplier, holiday_multiplier, weekly_overtime_threshold
                FROM company_settings
                ORDER BY setting_id
                LIMIT 1
                """
            )
            return CompanyPayrollSettings.from_mapping(fetchone(cur))


class MySQLHolidayCalendar(HolidayCalendar):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def is_holiday(self, day: date) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT 1 AS found FROM holidays WHERE holiday_date=%s", (day,))
            return fetchone(cur) is not None


class MySQLWeekCloseoutRepository(WeekCloseoutRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def closed_weeks(self, *, start: date, end: date) -> set[tuple[int, date]]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT project_id, week_start_date
                FROM week_closeouts
                WHERE week_start_date BETWEEN %s AND %s
                """,
                (week_start(start), end),
            )
            return {(int(r["project_id"]), r["week_start_date"]) for r in fetchall(cur)}
