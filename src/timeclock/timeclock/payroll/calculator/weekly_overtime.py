from __future__ import annotations

from typing import Optional, Sequence

from ...common.validators import as_float
from ..model import ClassifiedPersonTotals, CompanyPayrollSettings, WorkedHourRecord
from .base import HourClassifier


def resolve_rate(record: WorkedHourRecord) -> float:
    """Snapshot rate, else the person's current rate, else 0. Zero counts as unset."""
    return as_float(record.hourly_rate) or as_float(record.person_rate) or 0.0


def _hours(value) -> float:
    hours = as_float(value)
    return hours if hours and hours > 0 else 0.0


class WeeklyOvertimeClassifier(HourClassifier):
    """Weekly rule: holiday hours are paid apart, overtime is non-holiday hours above the threshold."""

    def classify_week(
        self,
        records: Sequence[WorkedHourRecord],
        settings: CompanyPayrollSettings,
        rate: Optional[float] = None,
    ) -> ClassifiedPersonTotals:
        if rate is None:
            rate = resolve_rate(records[0]) if records else 0.0

        total = sum(_hours(r.hours) for r in records)
        holiday = sum(_hours(r.hours) for r in records if r.is_holiday)
        non_holiday = total - holiday
        threshold = settings.weekly_overtime_threshold
        regular = min(non_holiday, threshold)
        overtime = max(0.0, non_holiday - threshold)

        return ClassifiedPersonTotals(
            total_hours=total,
            holiday_hours=holiday,
            regular_hours=regular,
            overtime_hours=overtime,
            rate=rate,
            regular_cost=regular * rate,
            overtime_cost=overtime * rate * settings.overtime_multiplier,
            holiday_cost=holiday * rate * settings.holiday_multiplier,
        )

    def entry_display_cost(self, record: WorkedHourRecord, settings: CompanyPayrollSettings) -> float:
        rate = resolve_rate(record)
        hours = _hours(record.hours)
        if record.is_holiday:
            return hours * rate * settings.holiday_multiplier

        regular = as_float(record.regular_hours)
        overtime = as_float(record.overtime_hours)
        if regular is None and overtime is None:
            regular = hours
        return (regular or 0.0) * rate + (overtime or 0.0) * rate * settings.overtime_multiplier


def allocate(totals: ClassifiedPersonTotals, share: Sequence[WorkedHourRecord], whole: Sequence[WorkedHourRecord]) -> ClassifiedPersonTotals:
    """Portion of a person's weekly totals attributable to ``share`` (a subset of ``whole``).

    Regular and overtime hours are split by the share of non-holiday hours;
    holiday hours belong to the entries that carry them.
    """
    whole_regular = sum(_hours(r.hours) for r in whole if not r.is_holiday)
    share_regular = sum(_hours(r.hours) for r in share if not r.is_holiday)
    share_holiday = sum(_hours(r.hours) for r in share if r.is_holiday)
    ratio = share_regular / whole_regular if whole_regular else 0.0
    holiday_ratio = share_holiday / totals.holiday_hours if totals.holiday_hours else 0.0

    return ClassifiedPersonTotals(
        total_hours=share_regular + share_holiday,
        holiday_hours=share_holiday,
        regular_hours=totals.regular_hours * ratio,
        overtime_hours=totals.overtime_hours * ratio,
        rate=totals.rate,
        regular_cost=totals.regular_cost * ratio,
        overtime_cost=totals.overtime_cost * ratio,
        holiday_cost=totals.holiday_cost * holiday_ratio,
    )
