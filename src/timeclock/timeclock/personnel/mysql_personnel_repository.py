from __future__ import annotations

from typing import Optional

from ..common.validators import as_float
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .model import Person
from .repository import PersonnelRepository


class MySQLPersonnelRepository(PersonnelRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, person_id: int) -> Optional[Person]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT personnel_id, first_name, last_name, hourly_rate
                FROM personnel
                WHERE personnel_id=%s
                """,
                (int(person_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return Person(
                person_id=int(r["personnel_id"]),
                first_name=r.get("first_name") or "",
                last_name=r.get("last_name") or "",
                hourly_rate=as_float(r.get("hourly_rate")),
            )
