"""Location sampling for open clock sessions.

Devices report their position on their own interval; each report is one
sample. The monitor only observes: it reports samples and geofence exits to
its listeners and never changes a session itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..common.datetime_utils import ensure_utc, now_utc
from ..core.constants import (
    DEFAULT_GEOFIX_TIMEOUT_MS,
    DEFAULT_MONITOR_THROTTLE_SECONDS,
)
from ..geo.acquirer import GeoFixAcquirer
from ..geo.geofence import check_geofence
from ..geo.model import GeofenceCheck, GeoFix
from ..projects.model import Project
from ..sessions.model import ClockSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationSample:
    session_id: int
    sampled_at: datetime
    fix: GeoFix
    check: Optional[GeofenceCheck] = None

    @property
    def outside(self) -> bool:
        return self.check is not None and not self.check.within


@dataclass(frozen=True)
class DriftEvent:
    """An open session's worker was sampled outside the job site radius."""

    session_id: int
    person_id: int
    project_id: int
    lat: float
    lng: float
    distance_miles: float
    radius_miles: float
    detected_at: datetime


def should_monitor(session: ClockSession, project: Project, now: Optional[datetime] = None) -> bool:
    if not session.is_open or session.is_on_lunch:
        return False
    if session.clock_blocked_until and session.clock_blocked_until > ensure_utc(now or now_utc()):
        return False
    return project.require_clock_location and project.geofence is not None


class LocationMonitor:
    def __init__(
        self,
        acquirer: Optional[GeoFixAcquirer] = None,
        *,
        throttle_seconds: float = DEFAULT_MONITOR_THROTTLE_SECONDS,
        geofix_timeout_ms: int = DEFAULT_GEOFIX_TIMEOUT_MS,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._acquirer = acquirer
        self._throttle = float(throttle_seconds)
        self._timeout_ms = int(geofix_timeout_ms)
        self._clock = clock
        self._last_sampled: dict[int, datetime] = {}
        self._sample_listeners: list[Callable[[LocationSample], None]] = []
        self._drift_listeners: list[Callable[[DriftEvent], None]] = []

    def on_sample(self, listener: Callable[[LocationSample], None]) -> None:
        self._sample_listeners.append(listener)

    def on_drift(self, listener: Callable[[DriftEvent], None]) -> None:
        self._drift_listeners.append(listener)

    def sample(
        self,
        session: ClockSession,
        project: Project,
        now: Optional[datetime] = None,
        *,
        fix: Optional[GeoFix] = None,
    ) -> Optional[LocationSample]:
        """Take one sample, or return None when the session is not monitored or was sampled too recently.

        ``fix`` is a location reported by the device; without one the monitor's
        own acquirer is asked.
        """
        now = ensure_utc(now or self._clock())
        if not should_monitor(session, project, now):
            self.forget(session.session_id)
            return None

        if self._throttled(session.session_id, now):
            return None
        self._last_sampled[session.session_id] = now

        if fix is None:
            fix = self._acquirer.acquire(self._timeout_ms) if self._acquirer else GeoFix.failure("no location provider")
        if not fix.has_location:
            logger.info("Location sample failed for session=%s: %s", session.session_id, fix.error)
            return LocationSample(session_id=session.session_id, sampled_at=now, fix=fix)

        check = check_geofence(fix, project.geofence)
        result = LocationSample(session_id=session.session_id, sampled_at=now, fix=fix, check=check)
        self._emit(self._sample_listeners, result)

        if not check.within:
            logger.warning(
                "Session %s sampled %.3f miles from site (limit %s)",
                session.session_id,
                check.distance_miles,
                check.radius_miles,
            )
            self._emit(
                self._drift_listeners,
                DriftEvent(
                    session_id=session.session_id,
                    person_id=session.person_id,
                    project_id=session.project_id,
                    lat=fix.lat,
                    lng=fix.lng,
                    distance_miles=check.distance_miles,
                    radius_miles=check.radius_miles,
                    detected_at=now,
                ),
            )
        return result

    def forget(self, session_id: int) -> None:
        self._last_sampled.pop(session_id, None)

    @property
    def tracked_sessions(self) -> int:
        return len(self._last_sampled)

    def _throttled(self, session_id: int, now: datetime) -> bool:
        # Entries past the throttle window no longer suppress anything.
        for tracked, at in list(self._last_sampled.items()):
            if (now - at).total_seconds() >= self._throttle:
                self._last_sampled.pop(tracked, None)
        return session_id in self._last_sampled

    def _emit(self, listeners, event) -> None:
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Location monitor listener failed")
