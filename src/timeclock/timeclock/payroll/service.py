from __future__ import annotations

from datetime import date
from typing import Any, Optional, Union

from ..common.datetime_utils import week_bounds, week_start
from ..core.enums import ReportView, SortKey
from ..core.exceptions import ValidationError
from .aggregator import CostAggregator, CostReport
from .calculator.base import HourClassifier
from .calculator.weekly_overtime import WeeklyOvertimeClassifier
from .repository import PayrollSettingsRepository, TimeEntryRepository, WeekCloseoutRepository


class PayrollReportService:
    def __init__(
        self,
        entries: TimeEntryRepository,
        settings: PayrollSettingsRepository,
        closeouts: Optional[WeekCloseoutRepository] = None,
        *,
        classifier: Optional[HourClassifier] = None,
    ):
        self._entries = entries
        self._settings = settings
        self._closeouts = closeouts
        self._classifier = classifier or WeeklyOvertimeClassifier()

    def build_cost_report(
        self,
        *,
        start: date,
        end: date,
        view: Union[ReportView, str] = ReportView.FLAT,
        sort: Union[SortKey, str] = SortKey.NAME,
        descending: bool = False,
        person_id: Optional[int] = None,
        project_id: Optional[int] = None,
    ) -> CostReport:
        if end < start:
            raise ValidationError("end must not be before start")

        # Whole weeks are loaded so overtime is decided on the full week even
        # when the window starts mid-week.
        records = self._entries.list_records(start=week_start(start), end=week_bounds(end)[1], person_id=person_id)
        closed = self._closeouts.closed_weeks(start=start, end=end) if self._closeouts else set()

        visible = [
            r for r in records if start <= r.entry_date <= end and (project_id is None or r.project_id == int(project_id))
        ]
        aggregator = CostAggregator(self._settings.get_settings(), classifier=self._classifier)
        return aggregator.build(
            visible,
            view=view,
            sort=sort,
            descending=descending,
            closed_weeks=closed,
            person_records=records,
        )

    def weekly_totals(self, *, week_of: date, person_id: Optional[int] = None) -> dict[str, Any]:
        start, end = week_bounds(week_of)
        records = self._entries.list_records(start=start, end=end, person_id=person_id)
        settings = self._settings.get_settings()

        by_person: dict[int, list] = {}
        for r in records:
            by_person.setdefault(r.person_id, []).append(r)

        people = []
        for pid, rs in by_person.items():
            totals = self._classifier.classify_week(rs, settings)
            people.append({"person_id": pid, "person_name": rs[0].person_name, **totals.to_dict()})
        people.sort(key=lambda p: (p["person_name"] or "").casefold())

        return {"week_start": start.isoformat(), "week_end": end.isoformat(), "people": people}
