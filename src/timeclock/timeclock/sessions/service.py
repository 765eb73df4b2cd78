from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Callable, Optional

from ..common.datetime_utils import ensure_utc, now_utc, round_half_up
from ..core.constants import DEFAULT_GEOFIX_TIMEOUT_MS, DEFAULT_LATE_GRACE_MINUTES, HOURS_PRECISION
from ..core.enums import GeofenceMode
from ..core.exceptions import NotFoundError
from ..geo.acquirer import GeoFixAcquirer
from ..geo.geofence import check_geofence
from ..geo.model import GeoFix
from ..notifications import LateClockAttempt, LoggingNotifier, SupervisorNotifier
from ..payroll.model import WorkedHourRecord
from ..payroll.repository import HolidayCalendar
from ..personnel.repository import PersonnelRepository
from ..projects.model import Project
from ..projects.repository import ProjectRepository
from ..schedules.guard import LatenessCheck, check_lateness
from ..schedules.repository import ScheduleRepository
from .errors import (
    AlreadyClockedIn,
    ClockBlocked,
    EarlyClockInBlocked,
    GeofenceViolation,
    LateClockInBlocked,
    LocationRequiredDenied,
    LunchAlreadyTaken,
    NoOpenSession,
    NotOnLunch,
    TimeClockDisabled,
)
from .model import (
    GEOFENCE_WARNING,
    LOCATION_UNAVAILABLE,
    LOCATION_UNVERIFIED,
    Advisory,
    ClockSession,
)
from .repository import SessionRepository

logger = logging.getLogger(__name__)

NO_LOCATION = "no location submitted"


def worked_hours(clock_in_at: datetime, clock_out_at: datetime, lunch_minutes: float = 0) -> float:
    """(out - in) minus lunch, never negative, rounded to 4 decimals."""
    seconds = (clock_out_at - clock_in_at).total_seconds() - (lunch_minutes or 0) * 60
    return round(max(seconds, 0.0) / 3600, HOURS_PRECISION)


def lunch_minutes_between(start: datetime, end: datetime) -> int:
    return max(round_half_up((end - start).total_seconds() / 60), 0)


@dataclass(frozen=True)
class ClockInResult:
    session: ClockSession
    advisories: tuple[Advisory, ...] = ()
    lateness: Optional[LatenessCheck] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "advisories": [a.to_dict() for a in self.advisories],
        }


@dataclass(frozen=True)
class ClockOutResult:
    session: ClockSession
    record: WorkedHourRecord
    advisories: tuple[Advisory, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "record": self.record.to_dict(),
            "advisories": [a.to_dict() for a in self.advisories],
        }


class ClockSessionManager:
    """Clock-in / lunch / clock-out transitions for one person at a time.

    Preconditions are checked before anything is written and every write is
    conditional in the store, so a refused transition leaves no trace.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        projects: ProjectRepository,
        personnel: PersonnelRepository,
        schedules: ScheduleRepository,
        *,
        notifier: Optional[SupervisorNotifier] = None,
        holidays: Optional[HolidayCalendar] = None,
        grace_minutes: int = DEFAULT_LATE_GRACE_MINUTES,
        block_early_clock_in: bool = False,
        geofix_timeout_ms: int = DEFAULT_GEOFIX_TIMEOUT_MS,
        timezone: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._sessions = sessions
        self._projects = projects
        self._personnel = personnel
        self._schedules = schedules
        self._notifier = notifier or LoggingNotifier()
        self._holidays = holidays
        self._grace_minutes = int(grace_minutes)
        self._block_early = bool(block_early_clock_in)
        self._geofix_timeout_ms = int(geofix_timeout_ms)
        self._tz = timezone
        self._clock = clock

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else ensure_utc(self._clock())

    def _local(self, moment: datetime) -> datetime:
        return moment.astimezone(self._tz) if self._tz else moment

    def _local_date(self, moment: datetime) -> date:
        return self._local(moment).date()

    def _acquire(self, geo: Optional[GeoFixAcquirer]) -> GeoFix:
        if geo is None:
            return GeoFix.failure(NO_LOCATION)
        return geo.acquire(self._geofix_timeout_ms)

    def _get_project(self, project_id: int) -> Project:
        project = self._projects.get_by_id(int(project_id))
        if not project:
            raise NotFoundError(f"Project {project_id} not found")
        return project

    def current_state(self, person_id: int) -> Optional[ClockSession]:
        return self._sessions.get_open_for_person(int(person_id))

    def clock_in(
        self,
        person_id: int,
        project_id: int,
        geo: Optional[GeoFixAcquirer] = None,
        *,
        now: Optional[datetime] = None,
        skip_schedule_check: bool = False,
    ) -> ClockInResult:
        now = self._now(now)
        project = self._get_project(project_id)
        if not project.time_clock_enabled:
            raise TimeClockDisabled(project.project_id)

        existing = self._sessions.get_open_for_person(int(person_id))
        if existing:
            raise AlreadyClockedIn(existing.project_id)

        blocked_until = self._sessions.get_block_until(int(person_id))
        if blocked_until and blocked_until > now:
            raise ClockBlocked(blocked_until)

        lateness = None
        if not skip_schedule_check:
            lateness = self._check_schedule(int(person_id), project, now)

        fix = self._acquire(geo)
        advisories = self._clock_in_location_rules(project, fix)

        session = self._sessions.create_open(
            person_id=int(person_id),
            project_id=project.project_id,
            clock_in_at=now,
            location=fix,
            entry_date=self._local_date(now),
        )
        logger.info("Clock-in: person=%s project=%s session=%s", person_id, project.project_id, session.session_id)
        return ClockInResult(session=session, advisories=tuple(advisories), lateness=lateness)

    def _check_schedule(self, person_id: int, project: Project, now: datetime) -> Optional[LatenessCheck]:
        local_now = self._local(now)
        schedule = self._schedules.get_for(
            person_id=person_id,
            project_id=project.project_id,
            scheduled_date=local_now.date(),
        )
        if not schedule:
            return None

        check = check_lateness(local_now, schedule.scheduled_start_time, self._grace_minutes)
        if check.late:
            self._notify_late(person_id, project, check, local_now)
            raise LateClockInBlocked(check.minutes_late, schedule.scheduled_start_time)
        if check.early and self._block_early:
            raise EarlyClockInBlocked(check.minutes_early, schedule.scheduled_start_time)
        return check

    def _notify_late(self, person_id: int, project: Project, check: LatenessCheck, local_now: datetime) -> None:
        try:
            person = self._personnel.get_by_id(person_id)
            self._notifier.notify_late_clock_attempt(
                LateClockAttempt(
                    person_id=person_id,
                    project_id=project.project_id,
                    scheduled_start_time=check.scheduled_time,
                    attempt_time=local_now.strftime("%I:%M %p"),
                    minutes_late=round(check.minutes_diff, 2),
                    person_name=person.full_name if person else None,
                    project_name=project.name,
                )
            )
        except Exception:
            logger.exception("Failed to notify late clock attempt for person=%s", person_id)

    def _clock_in_location_rules(self, project: Project, fix: GeoFix) -> list[Advisory]:
        mode = project.geofence_mode
        if project.require_clock_location and not fix.has_location:
            raise LocationRequiredDenied(fix.error or "location unavailable")

        advisories: list[Advisory] = []
        if mode == GeofenceMode.ENFORCED:
            check = check_geofence(fix, project.geofence)
            if not check.within:
                raise GeofenceViolation(check.distance_miles, check.radius_miles)
        elif mode == GeofenceMode.UNVERIFIED:
            advisories.append(
                Advisory(LOCATION_UNVERIFIED, "Location captured but no job site coordinates are configured")
            )
        elif mode == GeofenceMode.ADVISORY and fix.has_location:
            advisories.extend(self._distance_warning(project, fix))

        if not fix.has_location and fix.error != NO_LOCATION:
            advisories.append(Advisory(LOCATION_UNAVAILABLE, "Location could not be determined", {"reason": fix.error}))
        return advisories

    def _distance_warning(self, project: Project, fix: GeoFix) -> list[Advisory]:
        check = check_geofence(fix, project.geofence)
        if check.within:
            return []
        return [
            Advisory(
                GEOFENCE_WARNING,
                f"You are {check.distance_miles:.2f} miles from the job site (limit: {check.radius_miles} miles)",
                {"distance_miles": round(check.distance_miles, 4), "radius_miles": check.radius_miles},
            )
        ]

    def _owned_open_session(self, session_id: int, person_id: int, project_id: Optional[int]) -> ClockSession:
        session = self._sessions.get_by_id(int(session_id))
        if (
            not session
            or not session.is_open
            or session.person_id != int(person_id)
            or (project_id is not None and session.project_id != int(project_id))
        ):
            raise NoOpenSession(int(session_id))
        return session

    def start_lunch(
        self,
        session_id: int,
        person_id: int,
        project_id: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ClockSession:
        now = self._now(now)
        session = self._owned_open_session(session_id, person_id, project_id)
        if session.lunch_taken:
            raise LunchAlreadyTaken(session.session_id)

        updated = self._sessions.start_lunch(session_id=session.session_id, at=now)
        if updated is None:
            raise self._stale_write_error(session.session_id, LunchAlreadyTaken)
        logger.info("Lunch started: session=%s", session.session_id)
        return updated

    def end_lunch(
        self,
        session_id: int,
        person_id: int,
        project_id: Optional[int] = None,
        lunch_start_at: Optional[datetime] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ClockSession:
        now = self._now(now)
        session = self._owned_open_session(session_id, person_id, project_id)
        if not session.is_on_lunch:
            raise NotOnLunch(session.session_id)

        if lunch_start_at is not None and ensure_utc(lunch_start_at) != session.lunch_start_at:
            logger.debug("Ignoring client lunch start %s for session=%s", lunch_start_at, session.session_id)

        minutes = lunch_minutes_between(session.lunch_start_at, now)
        updated = self._sessions.end_lunch(session_id=session.session_id, at=now, minutes=minutes)
        if updated is None:
            raise self._stale_write_error(session.session_id, NotOnLunch)
        logger.info("Lunch ended: session=%s minutes=%s", session.session_id, minutes)
        return updated

    def clock_out(
        self,
        session_id: int,
        person_id: int,
        project_id: Optional[int] = None,
        geo: Optional[GeoFixAcquirer] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ClockOutResult:
        now = self._now(now)
        session = self._owned_open_session(session_id, person_id, project_id)
        project = self._get_project(session.project_id)

        fix = self._acquire(geo)
        if project.require_clock_location and not fix.has_location:
            raise LocationRequiredDenied(fix.error or "location unavailable")

        advisories: list[Advisory] = []
        if project.geofence and fix.has_location:
            advisories.extend(self._distance_warning(project, fix))
        elif not fix.has_location and fix.error != NO_LOCATION:
            advisories.append(Advisory(LOCATION_UNAVAILABLE, "Location could not be determined", {"reason": fix.error}))

        closed, record = self.close_session(session, now=now, location=fix, project=project)
        return ClockOutResult(session=closed, record=record, advisories=tuple(advisories))

    def close_session(
        self,
        session: ClockSession,
        *,
        now: datetime,
        location: GeoFix,
        project: Optional[Project] = None,
        auto_reason: Optional[str] = None,
        blocked_until: Optional[datetime] = None,
    ) -> tuple[ClockSession, WorkedHourRecord]:
        """Close an open session and emit its worked-hour record.

        Clock-out while on lunch ends the lunch at ``now`` and counts it.
        """
        now = ensure_utc(now)
        lunch_minutes = session.lunch_duration_minutes
        lunch_end_at = None
        if session.is_on_lunch and session.lunch_start_at:
            lunch_minutes += lunch_minutes_between(session.lunch_start_at, now)
            lunch_end_at = now

        hours = worked_hours(session.clock_in_at, now, lunch_minutes)
        person = self._personnel.get_by_id(session.person_id)
        rate = person.hourly_rate if person else None
        entry_date = self._local_date(session.clock_in_at)
        is_holiday = bool(self._holidays and self._holidays.is_holiday(entry_date))

        closed = self._sessions.close(
            session_id=session.session_id,
            clock_out_at=now,
            location=location,
            hours=hours,
            lunch_duration_minutes=lunch_minutes,
            lunch_end_at=lunch_end_at,
            hourly_rate=rate,
            is_holiday=is_holiday,
            auto_reason=auto_reason,
            blocked_until=blocked_until,
        )
        if closed is None:
            raise NoOpenSession(session.session_id)

        project = project or self._projects.get_by_id(session.project_id)
        record = WorkedHourRecord(
            record_id=closed.session_id,
            person_id=closed.person_id,
            project_id=closed.project_id,
            entry_date=entry_date,
            hours=hours,
            is_holiday=is_holiday,
            regular_hours=hours,
            overtime_hours=0.0,
            hourly_rate=rate,
            person_rate=rate,
            person_name=person.full_name if person else None,
            project_name=project.name if project else None,
        )
        logger.info(
            "Clock-out: person=%s project=%s session=%s hours=%s auto=%s",
            closed.person_id,
            closed.project_id,
            closed.session_id,
            hours,
            bool(auto_reason),
        )
        return closed, record

    def _stale_write_error(self, session_id: int, default: type) -> Exception:
        # The conditional write matched nothing: report what the row looks like now.
        current = self._sessions.get_by_id(session_id)
        if not current or not current.is_open:
            return NoOpenSession(session_id)
        return default(session_id)
