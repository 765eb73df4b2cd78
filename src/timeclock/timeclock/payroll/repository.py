from __future__ import annotations

from datetime import date
from typing import Optional, Protocol, Sequence

from .model import CompanyPayrollSettings, WorkedHourRecord


class TimeEntryRepository(Protocol):
    def list_records(
        self,
        *,
        start: date,
        end: date,
        person_id: Optional[int] = None,
        project_id: Optional[int] = None,
    ) -> Sequence[WorkedHourRecord]:
        """Closed or manual entries with ``start <= entry_date <= end``, oldest first."""
        raise NotImplementedError


class PayrollSettingsRepository(Protocol):
    def get_settings(self) -> CompanyPayrollSettings:
        raise NotImplementedError


class HolidayCalendar(Protocol):
    def is_holiday(self, day: date) -> bool:
        raise NotImplementedError


class WeekCloseoutRepository(Protocol):
    def closed_weeks(self, *, start: date, end: date) -> set[tuple[int, date]]:
        """``(project_id, week_start)`` pairs closed out within the window."""
        raise NotImplementedError
