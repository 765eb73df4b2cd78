from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional

from ..common.validators import as_float
from ..core.constants import (
    DEFAULT_HOLIDAY_MULTIPLIER,
    DEFAULT_OVERTIME_MULTIPLIER,
    DEFAULT_WEEKLY_OVERTIME_THRESHOLD,
)


@dataclass(frozen=True)
class CompanyPayrollSettings:
    """Company-wide pay rules. Read-only, shared by every classification."""

    overtime_multiplier: float = DEFAULT_OVERTIME_MULTIPLIER
    holiday_multiplier: float = DEFAULT_HOLIDAY_MULTIPLIER
    weekly_overtime_threshold: float = DEFAULT_WEEKLY_OVERTIME_THRESHOLD

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "CompanyPayrollSettings":
        data = data or {}

        def pick(key: str, default: float) -> float:
            value = as_float(data.get(key))
            return default if value is None else value

        return cls(
            overtime_multiplier=pick("overtime_multiplier", DEFAULT_OVERTIME_MULTIPLIER),
            holiday_multiplier=pick("holiday_multiplier", DEFAULT_HOLIDAY_MULTIPLIER),
            weekly_overtime_threshold=pick("weekly_overtime_threshold", DEFAULT_WEEKLY_OVERTIME_THRESHOLD),
        )


@dataclass(frozen=True)
class WorkedHourRecord:
    """One time entry: a closed clock session or a manual entry."""

    record_id: int
    person_id: int
    project_id: int
    entry_date: date
    hours: float
    is_holiday: bool = False
    regular_hours: Optional[float] = None
    overtime_hours: Optional[float] = None
    hourly_rate: Optional[float] = None
    person_rate: Optional[float] = None
    person_name: Optional[str] = None
    project_name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "person_id": self.person_id,
            "project_id": self.project_id,
            "entry_date": self.entry_date.isoformat(),
            "hours": self.hours,
            "is_holiday": self.is_holiday,
            "regular_hours": self.regular_hours,
            "overtime_hours": self.overtime_hours,
            "hourly_rate": self.hourly_rate,
        }


@dataclass(frozen=True)
class ClassifiedPersonTotals:
    """Derived hours and cost for one person over an aggregation window."""

    total_hours: float = 0.0
    holiday_hours: float = 0.0
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    rate: float = 0.0
    regular_cost: float = 0.0
    overtime_cost: float = 0.0
    holiday_cost: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.regular_cost + self.overtime_cost + self.holiday_cost

    def __add__(self, other: "ClassifiedPersonTotals") -> "ClassifiedPersonTotals":
        # Summing people: a blended rate has no meaning, so it is dropped.
        return ClassifiedPersonTotals(
            total_hours=self.total_hours + other.total_hours,
            holiday_hours=self.holiday_hours + other.holiday_hours,
            regular_hours=self.regular_hours + other.regular_hours,
            overtime_hours=self.overtime_hours + other.overtime_hours,
            regular_cost=self.regular_cost + other.regular_cost,
            overtime_cost=self.overtime_cost + other.overtime_cost,
            holiday_cost=self.holiday_cost + other.holiday_cost,
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "total_hours": round(self.total_hours, 4),
            "holiday_hours": round(self.holiday_hours, 4),
            "regular_hours": round(self.regular_hours, 4),
            "overtime_hours": round(self.overtime_hours, 4),
            "rate": self.rate,
            "regular_cost": round(self.regular_cost, 2),
            "overtime_cost": round(self.overtime_cost, 2),
            "holiday_cost": round(self.holiday_cost, 2),
            "total_cost": round(self.total_cost, 2),
        }
