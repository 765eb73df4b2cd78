from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..common.datetime_utils import ensure_utc, now_utc
from ..core.constants import DEFAULT_AUTO_CLOCK_OUT_BLOCK_HOURS, DEFAULT_STALE_LOCATION_MINUTES
from ..core.enums import LocationSource
from ..geo.model import GeoFix
from ..monitor.location_monitor import DriftEvent, LocationSample
from ..notifications import AutoClockOutAlert, LoggingNotifier, SupervisorNotifier
from ..projects.model import Project
from ..projects.repository import ProjectRepository
from .errors import NoOpenSession
from .model import ClockSession
from .repository import SessionRepository
from .service import ClockSessionManager

logger = logging.getLogger(__name__)


def left_site_reason(distance_miles: float, radius_miles: float) -> str:
    return f"Left job site - {distance_miles:.2f} miles from site (limit: {radius_miles:g} miles)"


def stale_location_reason(minutes: int) -> str:
    return f"No location update for {minutes}+ minutes"


class AutoClockOutService:
    """Closes sessions whose worker left the site or stopped reporting location.

    An auto clock-out also blocks the person from clocking in again until
    ``block_hours`` have passed.
    """

    def __init__(
        self,
        manager: ClockSessionManager,
        sessions: SessionRepository,
        projects: ProjectRepository,
        *,
        notifier: Optional[SupervisorNotifier] = None,
        block_hours: float = DEFAULT_AUTO_CLOCK_OUT_BLOCK_HOURS,
        stale_minutes: int = DEFAULT_STALE_LOCATION_MINUTES,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._manager = manager
        self._sessions = sessions
        self._projects = projects
        self._notifier = notifier or LoggingNotifier()
        self._block = timedelta(hours=block_hours)
        self._stale_minutes = int(stale_minutes)
        self._clock = clock

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now or self._clock())

    def record_location(self, session_id: int, lat: float, lng: float, now: Optional[datetime] = None) -> bool:
        return self._sessions.record_location_check(session_id=int(session_id), lat=lat, lng=lng, at=self._now(now))

    def handle_sample(self, sample: LocationSample) -> None:
        if sample.fix.has_location:
            self.record_location(sample.session_id, sample.fix.lat, sample.fix.lng, sample.sampled_at)

    def handle_drift(self, event: DriftEvent, now: Optional[datetime] = None) -> Optional[ClockSession]:
        now = self._now(now or event.detected_at)
        session = self._sessions.get_by_id(event.session_id)
        if not session or not session.is_open or session.is_on_lunch:
            return None

        location = GeoFix.fix(event.lat, event.lng, source=LocationSource.DEVICE, captured_at=event.detected_at)
        return self._auto_close(
            session,
            now=now,
            location=location,
            reason=left_site_reason(event.distance_miles, event.radius_miles),
            distance_miles=event.distance_miles,
            radius_miles=event.radius_miles,
        )

    def sweep_stale(self, now: Optional[datetime] = None) -> list[ClockSession]:
        """Auto-close open sessions on location-required projects with no recent location check."""
        now = self._now(now)
        threshold = now - timedelta(minutes=self._stale_minutes)
        closed = []
        projects: dict[int, Optional[Project]] = {}

        for session in self._sessions.list_open():
            if session.is_on_lunch or session.auto_clocked_out:
                continue
            # Sessions never sampled are left alone; only a lapsed check counts as stale.
            if session.last_location_check_at is None or session.last_location_check_at >= threshold:
                continue
            if session.project_id not in projects:
                projects[session.project_id] = self._projects.get_by_id(session.project_id)
            project = projects[session.project_id]
            if not project or not project.require_clock_location:
                continue

            result = self._auto_close(
                session,
                now=now,
                location=GeoFix.failure("stale location"),
                reason=stale_location_reason(self._stale_minutes),
                project=project,
            )
            if result is not None:
                closed.append(result)

        if closed:
            logger.info("Stale location sweep closed %d session(s)", len(closed))
        return closed

    def _auto_close(
        self,
        session: ClockSession,
        *,
        now: datetime,
        location: GeoFix,
        reason: str,
        project: Optional[Project] = None,
        distance_miles: Optional[float] = None,
        radius_miles: Optional[float] = None,
    ) -> Optional[ClockSession]:
        blocked_until = now + self._block
        try:
            closed, record = self._manager.close_session(
                session,
                now=now,
                location=location,
                project=project,
                auto_reason=reason,
                blocked_until=blocked_until,
            )
        except NoOpenSession:
            logger.info("Session %s closed before auto clock-out", session.session_id)
            return None

        logger.warning("Auto clock-out session=%s: %s", closed.session_id, reason)
        try:
            self._notifier.notify_auto_clock_out(
                AutoClockOutAlert(
                    person_id=closed.person_id,
                    project_id=closed.project_id,
                    session_id=closed.session_id,
                    reason=reason,
                    hours=record.hours,
                    blocked_until=blocked_until,
                    distance_miles=distance_miles,
                    radius_miles=radius_miles,
                    person_name=record.person_name,
                )
            )
        except Exception:
            logger.exception("Failed to notify auto clock-out for session=%s", closed.session_id)
        return closed
