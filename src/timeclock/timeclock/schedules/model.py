from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class PersonnelSchedule:
    person_id: int
    project_id: int
    scheduled_date: date
    scheduled_start_time: str  # "HH:MM:SS", kept verbatim for error messages
