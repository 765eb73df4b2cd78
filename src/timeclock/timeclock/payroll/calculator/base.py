from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from ..model import ClassifiedPersonTotals, CompanyPayrollSettings, WorkedHourRecord


class HourClassifier(ABC):
    """Splits a person's week into regular, overtime and holiday hours (Strategy Pattern)."""

    @abstractmethod
    def classify_week(
        self,
        records: Sequence[WorkedHourRecord],
        settings: CompanyPayrollSettings,
        rate: Optional[float] = None,
    ) -> ClassifiedPersonTotals:
        raise NotImplementedError

    @abstractmethod
    def entry_display_cost(self, record: WorkedHourRecord, settings: CompanyPayrollSettings) -> float:
        raise NotImplementedError
