from __future__ import annotations

from functools import wraps

from flask import Flask, request, session

from ..common.api import domain_failure, failure, ok, unexpected_failure
from ..common.datetime_utils import now_utc, parse_iso_datetime
from ..common.validators import optional_positive_int, require_positive_int
from ..core.exceptions import DomainError, NotFoundError, ValidationError
from ..container import Container
from ..geo.model import GeoFix
from .errors import NoOpenSession
from .model import elapsed_seconds


def register(app: Flask, container: Container) -> None:
    def login_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "personnel_id" not in session:
                return failure("Please sign in to continue", status=401, error={"kind": "Unauthorized"})
            return view(*args, **kwargs)

        return wrapper

    def _person_id() -> int:
        return int(session["personnel_id"])

    def _body() -> dict:
        return request.get_json(silent=True) or {}

    @app.route("/api/clock/in", methods=["POST"], endpoint="api_clock_in")
    @login_required
    def clock_in():
        data = _body()
        try:
            result = container.clock_manager.clock_in(
                _person_id(),
                require_positive_int(data.get("project_id"), "project_id"),
                container.location_source(data.get("geo_data"), request.remote_addr),
                skip_schedule_check=bool(data.get("skip_schedule_check", False)),
            )
            return ok(result.to_dict(), 201)
        except DomainError as e:
            return domain_failure(e)
        except Exception:
            return unexpected_failure("clock-in")

    @app.route("/api/clock/out", methods=["POST"], endpoint="api_clock_out")
    @login_required
    def clock_out():
        data = _body()
        try:
            result = container.clock_manager.clock_out(
                require_positive_int(data.get("session_id"), "session_id"),
                _person_id(),
                optional_positive_int(data.get("project_id"), "project_id"),
                container.location_source(data.get("geo_data"), request.remote_addr),
            )
            return ok(result.to_dict())
        except DomainError as e:
            return domain_failure(e)
        except Exception:
            return unexpected_failure("clock-out")

    @app.route("/api/clock/lunch/start", methods=["POST"], endpoint="api_lunch_start")
    @login_required
    def lunch_start():
        data = _body()
        try:
            updated = container.clock_manager.start_lunch(
                require_positive_int(data.get("session_id"), "session_id"),
                _person_id(),
                optional_positive_int(data.get("project_id"), "project_id"),
            )
            return ok({"session": updated.to_dict()})
        except DomainError as e:
            return domain_failure(e)
        except Exception:
            return unexpected_failure("lunch start")

    @app.route("/api/clock/lunch/end", methods=["POST"], endpoint="api_lunch_end")
    @login_required
    def lunch_end():
        data = _body()
        try:
            raw_start = data.get("lunch_start_at")
            try:
                lunch_start_at = parse_iso_datetime(raw_start) if isinstance(raw_start, str) else None
            except ValueError:
                raise ValidationError("lunch_start_at must be an ISO-8601 timestamp")
            updated = container.clock_manager.end_lunch(
                require_positive_int(data.get("session_id"), "session_id"),
                _person_id(),
                optional_positive_int(data.get("project_id"), "project_id"),
                lunch_start_at,
            )
            return ok({"session": updated.to_dict()})
        except DomainError as e:
            return domain_failure(e)
        except Exception:
            return unexpected_failure("lunch end")

    @app.route("/api/clock/open", methods=["GET"], endpoint="api_clock_open")
    @login_required
    def open_session():
        try:
            current = container.clock_manager.current_state(_person_id())
        except Exception:
            return unexpected_failure("open session lookup")

        if current is None:
            return ok({"state": "NOT_CLOCKED", "session": None, "elapsed_seconds": 0})

        now = now_utc()
        lunch_minutes = float(current.lunch_duration_minutes)
        if current.is_on_lunch and current.lunch_start_at:
            lunch_minutes += (now - current.lunch_start_at).total_seconds() / 60
        return ok(
            {
                "state": current.state.value,
                "session": current.to_dict(),
                "elapsed_seconds": int(elapsed_seconds(now, current.clock_in_at, lunch_minutes)),
            }
        )

    @app.route("/api/clock/location", methods=["POST"], endpoint="api_clock_location")
    @login_required
    def report_location():
        data = _body()
        try:
            session_id = require_positive_int(data.get("session_id"), "session_id")
            current = container.sessions_repo.get_by_id(session_id)
            if not current or current.person_id != _person_id() or not current.is_open:
                raise NoOpenSession(session_id)
            project = container.projects_repo.get_by_id(current.project_id)
            if not project:
                raise NotFoundError(f"Project {current.project_id} not found")

            fix = GeoFix.from_payload(data)
            if not fix.has_location:
                raise ValidationError("lat and lng must be valid coordinates")

            sample = container.location_monitor.sample(current, project, fix=fix)
            after = container.sessions_repo.get_by_id(session_id)
            return ok(
                {
                    "sampled": sample is not None,
                    "within": sample.check.within if sample and sample.check else None,
                    "auto_clocked_out": bool(after and after.auto_clocked_out),
                    "session": after.to_dict() if after else None,
                }
            )
        except DomainError as e:
            return domain_failure(e)
        except Exception:
            return unexpected_failure("location report")
