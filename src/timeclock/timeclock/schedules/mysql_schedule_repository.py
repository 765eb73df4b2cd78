from __future__ import annotations

from datetime import date
from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone, normalize_mysql_time
from .model import PersonnelSchedule
from .repository import ScheduleRepository


class MySQLScheduleRepository(ScheduleRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_for(self, *, person_id: int, project_id: int, scheduled_date: date) -> Optional[PersonnelSchedule]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT personnel_id, project_id, scheduled_date, scheduled_start_time
                FROM personnel_schedules
                WHERE personnel_id=%s AND project_id=%s AND scheduled_date=%s
                """,
                (int(person_id), int(project_id), scheduled_date),
            )
            r = fetchone(cur)
            if not r or r.get("scheduled_start_time") is None:
                return None
            start = normalize_mysql_time(r["scheduled_start_time"])
            return PersonnelSchedule(
                person_id=int(r["personnel_id"]),
                project_id=int(r["project_id"]),
                scheduled_date=r["scheduled_date"],
                scheduled_start_time=start.strftime("%H:%M:%S"),
            )
