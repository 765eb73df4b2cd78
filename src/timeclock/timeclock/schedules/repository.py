from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from .model import PersonnelSchedule


class ScheduleRepository(Protocol):
    def get_for(self, *, person_id: int, project_id: int, scheduled_date: date) -> Optional[PersonnelSchedule]:
        """Scheduled start for a person on a project and day, if any."""

        raise NotImplementedError
