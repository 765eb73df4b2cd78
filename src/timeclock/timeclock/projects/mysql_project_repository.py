from __future__ import annotations

from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from ..geo.model import SiteGeofence
from .model import Project
from .repository import ProjectRepository


class MySQLProjectRepository(ProjectRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, project_id: int) -> Optional[Project]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT project_id, name, time_clock_enabled, require_clock_location,
                       site_lat, site_lng, geofence_radius_miles
                FROM projects
                WHERE project_id=%s
                """,
                (int(project_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return Project(
                project_id=int(r["project_id"]),
                name=r["name"],
                time_clock_enabled=bool(r.get("time_clock_enabled")),
                require_clock_location=bool(r.get("require_clock_location")),
                geofence=SiteGeofence.from_coordinates(
                    r.get("site_lat"), r.get("site_lng"), r.get("geofence_radius_miles")
                ),
            )
