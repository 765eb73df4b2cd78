from __future__ import annotations

from datetime import date

import pytest

from src.timeclock.timeclock.core.enums import ReportView, SortKey
from src.timeclock.timeclock.payroll.aggregator import CostAggregator, Selection
from src.timeclock.timeclock.payroll.model import CompanyPayrollSettings, WorkedHourRecord

MONDAY = date(2026, 3, 2)


def rec(record_id, person_id, project_id, day, hours, *, holiday=False, rate=20.0, name=None, project=None, **kwargs):
    return WorkedHourRecord(
        record_id=record_id,
        person_id=person_id,
        project_id=project_id,
        entry_date=date(2026, 3, day),
        hours=hours,
        is_holiday=holiday,
        hourly_rate=rate,
        person_name=name or f"Worker {person_id}",
        project_name=project or f"Site {project_id}",
        **kwargs,
    )


def overtime_week():
    # Person 1: 48 non-holiday hours over two projects, all stored as regular.
    return [
        rec(1, 1, 10, 2, 12, name="ana"),
        rec(2, 1, 10, 3, 12, name="ana"),
        rec(3, 1, 20, 4, 12, name="ana"),
        rec(4, 1, 20, 5, 12, name="ana"),
        rec(5, 2, 10, 2, 8, name="Ben", rate=30.0),
    ]


def test_flat_view_classifies_each_person_weekly():
    report = CostAggregator().build(overtime_week(), view=ReportView.FLAT)

    ana, ben = report.nodes
    assert ana.label == "ana"
    assert ana.totals.overtime_hours == 8
    assert ana.totals.total_cost == 40 * 20 + 8 * 20 * 1.5
    assert ben.totals.total_cost == 240
    assert report.totals.total_cost == ana.totals.total_cost + ben.totals.total_cost
    assert report.totals.total_hours == 56


def test_project_scoped_person_nodes_sum_to_weekly_totals():
    report = CostAggregator().build(overtime_week(), view=ReportView.PROJECT)

    ana_parts = [p for project in report.nodes for p in project.children if p.key.endswith("person:1")]
    assert len(ana_parts) == 2
    assert sum(p.totals.overtime_hours for p in ana_parts) == pytest.approx(8)
    assert sum(p.totals.total_cost for p in ana_parts) == pytest.approx(40 * 20 + 8 * 30)


def test_person_view_has_project_and_day_levels():
    report = CostAggregator().build(overtime_week(), view="person")

    ana = report.nodes[0]
    assert [c.level for c in ana.children] == ["project", "project"]
    days = ana.children[0].children
    assert [d.entry_date for d in days] == [date(2026, 3, 2), date(2026, 3, 3)]
    assert days[0].cost == 240


def test_entry_costs_disagreeing_with_weekly_cost_are_flagged_not_adjusted(caplog):
    report = CostAggregator().build(overtime_week(), view=ReportView.FLAT)

    ana = report.nodes[0]
    assert ana.needs_review is True
    assert ana.display_cost == 48 * 20
    assert ana.totals.total_cost == 1040
    assert report.needs_review_person_ids == frozenset({1})
    assert "person=1" in caplog.text


def test_matching_entry_costs_are_not_flagged():
    records = [rec(1, 1, 10, 2, 8), rec(2, 1, 10, 3, 8, holiday=True)]
    report = CostAggregator().build(records)
    assert report.nodes[0].needs_review is False
    assert report.needs_review_person_ids == frozenset()


def test_holiday_hours_stay_with_their_project():
    records = [rec(1, 1, 10, 2, 40), rec(2, 1, 20, 3, 8, holiday=True)]
    report = CostAggregator().build(records, view=ReportView.PROJECT)

    by_key = {n.key: n for n in report.nodes}
    assert by_key["project:10"].totals.holiday_cost == 0
    assert by_key["project:20"].totals.holiday_cost == 320
    assert by_key["project:20"].totals.overtime_hours == 0


def test_person_classified_over_whole_week_even_when_report_shows_part():
    full = overtime_week()
    visible = [r for r in full if r.entry_date == date(2026, 3, 5)]

    report = CostAggregator().build(visible, person_records=full)

    (ana,) = report.nodes
    assert ana.totals.total_hours == 12
    assert ana.totals.overtime_hours == pytest.approx(2)


def test_weeks_are_classified_separately():
    records = [rec(1, 1, 10, 2, 30), rec(2, 1, 10, 9, 30)]
    report = CostAggregator().build(records)
    assert report.nodes[0].totals.overtime_hours == 0


def test_sorting_is_case_insensitive_stable_and_reversible():
    records = [
        rec(1, 1, 10, 2, 5, name="bob"),
        rec(2, 2, 10, 2, 9, name="Alice"),
        rec(3, 3, 10, 2, 5, name="carl"),
    ]
    agg = CostAggregator()

    assert [n.label for n in agg.build(records, sort=SortKey.NAME).nodes] == ["Alice", "bob", "carl"]
    assert [n.label for n in agg.build(records, sort=SortKey.HOURS).nodes] == ["bob", "carl", "Alice"]
    assert [n.label for n in agg.build(records, sort=SortKey.HOURS, descending=True).nodes] == ["Alice", "bob", "carl"]
    assert [n.label for n in agg.build(records, sort="entries").nodes] == ["bob", "Alice", "carl"]


def test_closed_project_weeks_lock_nodes():
    records = overtime_week()
    report = CostAggregator().build(records, view=ReportView.PROJECT, closed_weeks={(10, MONDAY)})

    by_key = {n.key: n for n in report.nodes}
    assert by_key["project:10"].locked is True
    assert by_key["project:20"].locked is False
    assert report.locked_record_ids == frozenset({1, 2, 5})


def test_custom_settings_change_overtime_threshold():
    settings = CompanyPayrollSettings(weekly_overtime_threshold=32)
    report = CostAggregator(settings).build([rec(1, 1, 10, 2, 40)])
    assert report.nodes[0].totals.overtime_hours == 8


def test_selection_group_toggle_and_locked_ids():
    report = CostAggregator().build(overtime_week(), view=ReportView.PROJECT, closed_weeks={(10, MONDAY)})
    selection = Selection.for_report(report)
    site_10, site_20 = report.nodes

    selection.toggle(site_20)
    assert selection.is_selected(site_20)
    selection.select(1)
    assert selection.is_indeterminate(site_10)
    assert not selection.is_selected(site_10)

    selection.toggle(site_10)
    assert selection.is_selected(site_10)
    assert selection.actionable_ids() == frozenset({3, 4})

    selection.toggle(site_10)
    assert selection.selected == frozenset({3, 4})
    selection.clear()
    assert selection.selected == frozenset()


def test_report_serializes_to_json_shape():
    data = CostAggregator().build(overtime_week(), view=ReportView.PERSON).to_dict()
    assert data["view"] == "person"
    assert data["nodes"][0]["children"][0]["children"][0]["level"] == "day"
    assert data["totals"]["total_hours"] == 56
