from __future__ import annotations

from datetime import date, timedelta
from functools import wraps

from flask import Flask, request, session

from ..common.api import domain_failure, failure, ok, unexpected_failure
from ..common.datetime_utils import parse_iso_date, week_bounds
from ..common.validators import optional_positive_int
from ..core.enums import ReportView, SortKey
from ..core.exceptions import DomainError, ValidationError
from ..container import Container


def register(app: Flask, container: Container) -> None:
    def login_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "personnel_id" not in session:
                return failure("Please sign in to continue", status=401, error={"kind": "Unauthorized"})
            return view(*args, **kwargs)

        return wrapper

    def _date_arg(name: str, default: date) -> date:
        raw = request.args.get(name)
        if not raw:
            return default
        try:
            return parse_iso_date(raw)
        except ValueError:
            raise ValidationError(f"{name} must be YYYY-MM-DD")

    def _enum_arg(name: str, enum_cls, default):
        raw = (request.args.get(name) or "").strip().lower()
        if not raw:
            return default
        try:
            return enum_cls(raw)
        except ValueError:
            raise ValidationError(f"{name} must be one of: {', '.join(e.value for e in enum_cls)}")

    @app.route("/api/time/report", methods=["GET"], endpoint="api_time_report")
    @login_required
    def time_report():
        try:
            week_start, week_end = week_bounds(date.today())
            start = _date_arg("start", week_start)
            end = _date_arg("end", week_end)
            if end - start > timedelta(days=366):
                raise ValidationError("report window is limited to one year")

            report = container.payroll_report_service.build_cost_report(
                start=start,
                end=end,
                view=_enum_arg("view", ReportView, ReportView.FLAT),
                sort=_enum_arg("sort", SortKey, SortKey.NAME),
                descending=request.args.get("desc", "0").lower() in {"1", "true", "yes"},
                person_id=optional_positive_int(request.args.get("person_id"), "person_id"),
                project_id=optional_positive_int(request.args.get("project_id"), "project_id"),
            )
            return ok({"start": start.isoformat(), "end": end.isoformat(), "report": report.to_dict()})
        except DomainError as e:
            return domain_failure(e)
        except Exception:
            return unexpected_failure("time report")

    @app.route("/api/time/weekly", methods=["GET"], endpoint="api_time_weekly")
    @login_required
    def weekly_totals():
        try:
            week_of = _date_arg("week_of", date.today())
            data = container.payroll_report_service.weekly_totals(
                week_of=week_of,
                person_id=optional_positive_int(request.args.get("person_id"), "person_id"),
            )
            return ok(data)
        except DomainError as e:
            return domain_failure(e)
        except Exception:
            return unexpected_failure("weekly totals")
