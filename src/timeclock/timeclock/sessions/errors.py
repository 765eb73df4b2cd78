"""Typed clock transition failures.

Every refusal of a clock transition is one of these. ``str(err)`` is the
colon-delimited legacy message; ``parse_clock_error`` turns such a message back
into the typed error for clients that only have the string.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ..core.enums import ErrorCategory
from ..core.exceptions import ClockError
from ..schedules.guard import format_scheduled_time


class AlreadyClockedIn(ClockError):
    code = "ALREADY_CLOCKED_IN"
    category = ErrorCategory.INVARIANT

    def __init__(self, open_project_id: Optional[int] = None):
        super().__init__(self.code)
        self.open_project_id = open_project_id

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "open_project_id": self.open_project_id}


class TimeClockDisabled(ClockError):
    code = "TIME_CLOCK_DISABLED"
    category = ErrorCategory.POLICY_BLOCK

    def __init__(self, project_id: Optional[int] = None):
        super().__init__(self.code)
        self.project_id = project_id

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "project_id": self.project_id}


class ClockBlocked(ClockError):
    """Clock-in refused while a previous auto clock-out block is active."""

    code = "CLOCK_BLOCKED"
    category = ErrorCategory.POLICY_BLOCK

    def __init__(self, blocked_until: Optional[datetime] = None):
        super().__init__(self.code)
        self.blocked_until = blocked_until

    def wire_parts(self) -> tuple[Any, ...]:
        return (self.blocked_until.isoformat(),) if self.blocked_until else ()

    def to_dict(self) -> dict[str, Any]:
        until = self.blocked_until.isoformat() if self.blocked_until else None
        return {**super().to_dict(), "blocked_until": until}


class LateClockInBlocked(ClockError):
    code = "LATE_CLOCK_IN_BLOCKED"
    category = ErrorCategory.POLICY_BLOCK

    def __init__(self, minutes_late: int, scheduled_time: str):
        super().__init__(self.code)
        self.minutes_late = int(minutes_late)
        self.scheduled_time = scheduled_time

    @property
    def display_time(self) -> str:
        return format_scheduled_time(self.scheduled_time)

    def wire_parts(self) -> tuple[Any, ...]:
        return (self.minutes_late, self.scheduled_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "minutes_late": self.minutes_late,
            "scheduled_time": self.scheduled_time,
            "display_time": self.display_time,
        }


class EarlyClockInBlocked(ClockError):
    code = "EARLY_CLOCK_IN_BLOCKED"
    category = ErrorCategory.POLICY_BLOCK

    def __init__(self, minutes_early: int, scheduled_time: str):
        super().__init__(self.code)
        self.minutes_early = int(minutes_early)
        self.scheduled_time = scheduled_time

    def wire_parts(self) -> tuple[Any, ...]:
        return (self.minutes_early, self.scheduled_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "minutes_early": self.minutes_early,
            "scheduled_time": self.scheduled_time,
            "display_time": format_scheduled_time(self.scheduled_time),
        }


class GeofenceViolation(ClockError):
    code = "GEOFENCE_VIOLATION"
    category = ErrorCategory.POLICY_BLOCK

    def __init__(self, distance_miles: float, radius_miles: float):
        super().__init__(self.code)
        self.distance_miles = float(distance_miles)
        self.radius_miles = float(radius_miles)

    def wire_parts(self) -> tuple[Any, ...]:
        return (f"{self.distance_miles:.2f}",)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "distance_miles": round(self.distance_miles, 4),
            "radius_miles": self.radius_miles,
        }


class LocationRequiredDenied(ClockError):
    """A location-required project could not get a fix. The user may retry."""

    code = "LOCATION_REQUIRED_DENIED"
    category = ErrorCategory.RETRYABLE

    def __init__(self, reason: str = ""):
        super().__init__(self.code)
        self.reason = reason or ""

    @property
    def permission_denied(self) -> bool:
        return "denied" in self.reason.lower()

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "reason": self.reason, "permission_denied": self.permission_denied}


class NoOpenSession(ClockError):
    code = "NO_OPEN_SESSION"
    category = ErrorCategory.INVARIANT

    def __init__(self, session_id: Optional[int] = None):
        super().__init__(self.code)
        self.session_id = session_id

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "session_id": self.session_id}


class LunchAlreadyTaken(ClockError):
    code = "LUNCH_ALREADY_TAKEN"
    category = ErrorCategory.INVARIANT

    def __init__(self, session_id: Optional[int] = None):
        super().__init__(self.code)
        self.session_id = session_id


class NotOnLunch(ClockError):
    code = "NOT_ON_LUNCH"
    category = ErrorCategory.INVARIANT

    def __init__(self, session_id: Optional[int] = None):
        super().__init__(self.code)
        self.session_id = session_id


def _parse_late(parts: list[str]) -> Optional[ClockError]:
    # "11:08:00:00" -> minutes, then the scheduled time which itself holds colons.
    if len(parts) < 2:
        return None
    try:
        minutes = int(parts[0])
    except ValueError:
        return None
    return LateClockInBlocked(minutes, ":".join(parts[1:]))


def _parse_early(parts: list[str]) -> Optional[ClockError]:
    if len(parts) < 2:
        return None
    try:
        minutes = int(parts[0])
    except ValueError:
        return None
    return EarlyClockInBlocked(minutes, ":".join(parts[1:]))


def _parse_geofence(parts: list[str]) -> Optional[ClockError]:
    if not parts:
        return None
    try:
        return GeofenceViolation(float(parts[0]), 0.0)
    except ValueError:
        return None


def _parse_blocked(parts: list[str]) -> Optional[ClockError]:
    if not parts:
        return ClockBlocked()
    try:
        return ClockBlocked(datetime.fromisoformat(":".join(parts)))
    except ValueError:
        return ClockBlocked()


_SIMPLE = {
    cls.code: cls
    for cls in (AlreadyClockedIn, TimeClockDisabled, LocationRequiredDenied, NoOpenSession, LunchAlreadyTaken, NotOnLunch)
}

_PARSERS = {
    LateClockInBlocked.code: _parse_late,
    EarlyClockInBlocked.code: _parse_early,
    GeofenceViolation.code: _parse_geofence,
    ClockBlocked.code: _parse_blocked,
}


def parse_clock_error(message: Optional[str]) -> Optional[ClockError]:
    """Typed error for a legacy message, or None when the string is opaque."""
    if not message:
        return None
    code, _, rest = message.strip().partition(":")
    if code in _PARSERS:
        return _PARSERS[code](rest.split(":") if rest else [])
    if code in _SIMPLE and not rest:
        return _SIMPLE[code]()
    return None
