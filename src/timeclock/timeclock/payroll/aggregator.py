"""Groups worked-hour records into report trees with hour and cost totals.

A person's totals always come from classifying each of their weeks as a
whole; a project-scoped person node receives a proportional share of those
totals, never a re-classification of the project's subset.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Callable, Collection, Iterable, Optional, Sequence, Union

from ..common.datetime_utils import week_start
from ..core.constants import COST_DISCREPANCY_TOLERANCE
from ..core.enums import ReportView, SortKey
from .calculator.base import HourClassifier
from .calculator.weekly_overtime import WeeklyOvertimeClassifier, allocate
from .model import ClassifiedPersonTotals, CompanyPayrollSettings, WorkedHourRecord

logger = logging.getLogger(__name__)

PersonWeek = tuple[int, date]
ProjectWeek = tuple[int, date]


@dataclass(frozen=True)
class ReportNode:
    key: str
    label: str
    level: str
    record_ids: frozenset[int]
    totals: ClassifiedPersonTotals
    display_cost: float
    locked: bool = False
    needs_review: bool = False
    entry_date: Optional[date] = None
    children: tuple["ReportNode", ...] = ()

    @property
    def entry_count(self) -> int:
        return len(self.record_ids)

    @property
    def cost(self) -> float:
        # Day nodes have no weekly classification of their own.
        return self.display_cost if self.level == "day" else self.totals.total_cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "level": self.level,
            "record_ids": sorted(self.record_ids),
            "entry_count": self.entry_count,
            "entry_date": self.entry_date.isoformat() if self.entry_date else None,
            "totals": self.totals.to_dict(),
            "cost": round(self.cost, 2),
            "display_cost": round(self.display_cost, 2),
            "locked": self.locked,
            "needs_review": self.needs_review,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class CostReport:
    view: ReportView
    nodes: tuple[ReportNode, ...]
    totals: ClassifiedPersonTotals
    locked_record_ids: frozenset[int] = frozenset()
    needs_review_person_ids: frozenset[int] = frozenset()

    def to_dict(self) -> dict[str, Any]:
        return {
            "view": self.view.value,
            "totals": self.totals.to_dict(),
            "nodes": [n.to_dict() for n in self.nodes],
            "needs_review_person_ids": sorted(self.needs_review_person_ids),
        }


_SORT_KEYS: dict[SortKey, Callable[[ReportNode], Any]] = {
    SortKey.NAME: lambda n: n.label.casefold(),
    SortKey.HOURS: lambda n: n.totals.total_hours,
    SortKey.COST: lambda n: n.cost,
    SortKey.ENTRIES: lambda n: n.entry_count,
}


def _by_date(node: ReportNode) -> date:
    return node.entry_date


def sort_nodes(nodes: Iterable[ReportNode], sort: SortKey = SortKey.NAME, descending: bool = False) -> tuple[ReportNode, ...]:
    """Stable sort: ties keep insertion order in both directions."""
    items = list(nodes)
    if items and items[0].level == "day":
        return tuple(sorted(items, key=_by_date, reverse=descending))
    key = _SORT_KEYS[SortKey(sort)]
    return tuple(sorted(items, key=key, reverse=descending))


class CostAggregator:
    def __init__(self, settings: Optional[CompanyPayrollSettings] = None, *, classifier: Optional[HourClassifier] = None):
        self._settings = settings or CompanyPayrollSettings()
        self._classifier = classifier or WeeklyOvertimeClassifier()

    def build(
        self,
        records: Sequence[WorkedHourRecord],
        *,
        view: Union[ReportView, str] = ReportView.FLAT,
        sort: Union[SortKey, str] = SortKey.NAME,
        descending: bool = False,
        closed_weeks: Collection[ProjectWeek] = (),
        person_records: Optional[Sequence[WorkedHourRecord]] = None,
    ) -> CostReport:
        """Build the report tree for ``records``.

        ``person_records`` is the full set each person is classified over (whole
        weeks); it defaults to ``records``. Person nodes covering only part of it
        receive a proportional allocation.
        """
        view = ReportView(view)
        sort = SortKey(sort)
        closed = set(closed_weeks)

        full = list(records) if person_records is None else _union(person_records, records)
        weeks: dict[PersonWeek, list[WorkedHourRecord]] = defaultdict(list)
        for r in full:
            weeks[(r.person_id, week_start(r.entry_date))].append(r)

        week_totals = {pw: self._classifier.classify_week(rs, self._settings) for pw, rs in weeks.items()}
        person_totals: dict[int, ClassifiedPersonTotals] = {}
        for (person_id, _), totals in week_totals.items():
            previous = person_totals.get(person_id)
            person_totals[person_id] = totals if previous is None else _merge(previous, totals)

        display = {r.record_id: self._classifier.entry_display_cost(r, self._settings) for r in full}
        locked_ids = frozenset(r.record_id for r in full if (r.project_id, week_start(r.entry_date)) in closed)
        review = self._flag_discrepancies(full, person_totals, display)

        full_ids: dict[int, set[int]] = defaultdict(set)
        for r in full:
            full_ids[r.person_id].add(r.record_id)

        ctx = _BuildContext(weeks, week_totals, person_totals, full_ids, display, locked_ids, review, sort, descending)
        if view == ReportView.PROJECT:
            nodes = ctx.project_tree(records)
        elif view == ReportView.PERSON:
            nodes = ctx.person_tree(records)
        else:
            nodes = ctx.person_nodes(records, with_children=False)

        grand = ClassifiedPersonTotals()
        for node in nodes:
            grand = grand + node.totals

        return CostReport(
            view=view,
            nodes=nodes,
            totals=grand,
            locked_record_ids=locked_ids,
            needs_review_person_ids=frozenset(review & {r.person_id for r in records}),
        )

    def _flag_discrepancies(
        self,
        records: Sequence[WorkedHourRecord],
        person_totals: dict[int, ClassifiedPersonTotals],
        display: dict[int, float],
    ) -> set[int]:
        sums: dict[int, float] = defaultdict(float)
        for r in records:
            sums[r.person_id] += display[r.record_id]

        flagged = set()
        for person_id, totals in person_totals.items():
            diff = sums[person_id] - totals.total_cost
            if abs(diff) > COST_DISCREPANCY_TOLERANCE:
                logger.warning(
                    "Entry costs for person=%s differ from weekly cost by %.2f (entries=%.2f weekly=%.2f)",
                    person_id,
                    diff,
                    sums[person_id],
                    totals.total_cost,
                )
                flagged.add(person_id)
        return flagged


def _union(first: Sequence[WorkedHourRecord], second: Sequence[WorkedHourRecord]) -> list[WorkedHourRecord]:
    seen = {r.record_id for r in first}
    return [*first, *(r for r in second if r.record_id not in seen)]


def _merge(a: ClassifiedPersonTotals, b: ClassifiedPersonTotals) -> ClassifiedPersonTotals:
    # Keep the rate when both parts resolved the same one.
    return replace(a + b, rate=a.rate if a.rate == b.rate else 0.0)


@dataclass
class _BuildContext:
    weeks: dict[PersonWeek, list[WorkedHourRecord]]
    week_totals: dict[PersonWeek, ClassifiedPersonTotals]
    person_totals: dict[int, ClassifiedPersonTotals]
    full_ids: dict[int, set[int]]
    display: dict[int, float]
    locked_ids: frozenset[int]
    review: set[int]
    sort: SortKey
    descending: bool

    def _is_locked(self, records: Sequence[WorkedHourRecord]) -> bool:
        return bool(records) and all(r.record_id in self.locked_ids for r in records)

    def _display_sum(self, records: Sequence[WorkedHourRecord]) -> float:
        return sum(self.display[r.record_id] for r in records)

    def _person_totals(self, person_id: int, records: Sequence[WorkedHourRecord]) -> ClassifiedPersonTotals:
        if {r.record_id for r in records} == self.full_ids[person_id]:
            return self.person_totals[person_id]
        return self._allocated(person_id, records)

    def _allocated(self, person_id: int, share: Sequence[WorkedHourRecord]) -> ClassifiedPersonTotals:
        by_week: dict[date, list[WorkedHourRecord]] = defaultdict(list)
        for r in share:
            by_week[week_start(r.entry_date)].append(r)

        result: Optional[ClassifiedPersonTotals] = None
        for wk, rs in by_week.items():
            pw = (person_id, wk)
            part = allocate(self.week_totals[pw], rs, self.weeks[pw])
            result = part if result is None else _merge(result, part)
        return result or ClassifiedPersonTotals()

    def day_nodes(self, prefix: str, records: Sequence[WorkedHourRecord]) -> tuple[ReportNode, ...]:
        by_day: dict[date, list[WorkedHourRecord]] = defaultdict(list)
        for r in records:
            by_day[r.entry_date].append(r)

        nodes = []
        for day, rs in by_day.items():
            hours = sum(max(r.hours or 0.0, 0.0) for r in rs)
            holiday = sum(max(r.hours or 0.0, 0.0) for r in rs if r.is_holiday)
            nodes.append(
                ReportNode(
                    key=f"{prefix}/day:{day.isoformat()}",
                    label=day.isoformat(),
                    level="day",
                    record_ids=frozenset(r.record_id for r in rs),
                    totals=ClassifiedPersonTotals(total_hours=hours, holiday_hours=holiday),
                    display_cost=self._display_sum(rs),
                    locked=self._is_locked(rs),
                    entry_date=day,
                )
            )
        return sort_nodes(nodes, self.sort, self.descending)

    def _group(self, records: Sequence[WorkedHourRecord], key: Callable[[WorkedHourRecord], int]) -> dict[int, list[WorkedHourRecord]]:
        groups: dict[int, list[WorkedHourRecord]] = {}
        for r in records:
            groups.setdefault(key(r), []).append(r)
        return groups

    def person_nodes(self, records: Sequence[WorkedHourRecord], *, with_children: bool = True) -> tuple[ReportNode, ...]:
        nodes = []
        for person_id, rs in self._group(records, lambda r: r.person_id).items():
            key = f"person:{person_id}"
            children: tuple[ReportNode, ...] = ()
            if with_children:
                children = self.project_nodes_for_person(key, person_id, rs)
            nodes.append(
                ReportNode(
                    key=key,
                    label=rs[0].person_name or f"Person {person_id}",
                    level="person",
                    record_ids=frozenset(r.record_id for r in rs),
                    totals=self._person_totals(person_id, rs),
                    display_cost=self._display_sum(rs),
                    locked=self._is_locked(rs),
                    needs_review=person_id in self.review,
                    children=children,
                )
            )
        return sort_nodes(nodes, self.sort, self.descending)

    def project_nodes_for_person(self, prefix: str, person_id: int, records: Sequence[WorkedHourRecord]) -> tuple[ReportNode, ...]:
        nodes = []
        for project_id, rs in self._group(records, lambda r: r.project_id).items():
            key = f"{prefix}/project:{project_id}"
            nodes.append(
                ReportNode(
                    key=key,
                    label=rs[0].project_name or f"Project {project_id}",
                    level="project",
                    record_ids=frozenset(r.record_id for r in rs),
                    totals=self._allocated(person_id, rs),
                    display_cost=self._display_sum(rs),
                    locked=self._is_locked(rs),
                    children=self.day_nodes(key, rs),
                )
            )
        return sort_nodes(nodes, self.sort, self.descending)

    def person_tree(self, records: Sequence[WorkedHourRecord]) -> tuple[ReportNode, ...]:
        return self.person_nodes(records, with_children=True)

    def project_tree(self, records: Sequence[WorkedHourRecord]) -> tuple[ReportNode, ...]:
        nodes = []
        for project_id, project_records in self._group(records, lambda r: r.project_id).items():
            key = f"project:{project_id}"
            people = []
            for person_id, rs in self._group(project_records, lambda r: r.person_id).items():
                person_key = f"{key}/person:{person_id}"
                people.append(
                    ReportNode(
                        key=person_key,
                        label=rs[0].person_name or f"Person {person_id}",
                        level="person",
                        record_ids=frozenset(r.record_id for r in rs),
                        totals=self._allocated(person_id, rs),
                        display_cost=self._display_sum(rs),
                        locked=self._is_locked(rs),
                        needs_review=person_id in self.review,
                        children=self.day_nodes(person_key, rs),
                    )
                )
            people_sorted = sort_nodes(people, self.sort, self.descending)

            totals = ClassifiedPersonTotals()
            for p in people_sorted:
                totals = totals + p.totals
            nodes.append(
                ReportNode(
                    key=key,
                    label=project_records[0].project_name or f"Project {project_id}",
                    level="project",
                    record_ids=frozenset(r.record_id for r in project_records),
                    totals=totals,
                    display_cost=self._display_sum(project_records),
                    locked=all(p.locked for p in people_sorted),
                    children=people_sorted,
                )
            )
        return sort_nodes(nodes, self.sort, self.descending)


class Selection:
    """Selected record ids for bulk actions on a report tree."""

    def __init__(self, locked_ids: Collection[int] = ()):
        self._locked = frozenset(locked_ids)
        self._selected: set[int] = set()

    @classmethod
    def for_report(cls, report: CostReport) -> "Selection":
        return cls(report.locked_record_ids)

    @property
    def selected(self) -> frozenset[int]:
        return frozenset(self._selected)

    def select(self, target: Union[ReportNode, Iterable[int], int]) -> None:
        self._selected.update(_ids(target))

    def deselect(self, target: Union[ReportNode, Iterable[int], int]) -> None:
        self._selected.difference_update(_ids(target))

    def toggle(self, target: Union[ReportNode, Iterable[int], int]) -> None:
        """Group toggle: a fully selected group is cleared, anything else becomes fully selected."""
        if self.is_selected(target):
            self.deselect(target)
        else:
            self.select(target)

    def is_selected(self, target: Union[ReportNode, Iterable[int], int]) -> bool:
        ids = _ids(target)
        return bool(ids) and ids <= self._selected

    def is_indeterminate(self, target: Union[ReportNode, Iterable[int], int]) -> bool:
        ids = _ids(target)
        picked = ids & self._selected
        return bool(picked) and picked != ids

    def actionable_ids(self) -> frozenset[int]:
        return frozenset(self._selected - self._locked)

    def clear(self) -> None:
        self._selected.clear()


def _ids(target: Union[ReportNode, Iterable[int], int]) -> frozenset[int]:
    if isinstance(target, ReportNode):
        return target.record_ids
    if isinstance(target, int):
        return frozenset((target,))
    return frozenset(target)
