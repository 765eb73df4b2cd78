from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..core.enums import SessionState
from ..geo.model import GeoFix


def derive_state(
    clock_out_at: Optional[datetime],
    lunch_start_at: Optional[datetime],
    lunch_end_at: Optional[datetime],
) -> SessionState:
    """Explicit state from the persisted timestamps (computed once, at load)."""
    if clock_out_at is not None:
        return SessionState.NOT_CLOCKED
    if lunch_start_at is not None and lunch_end_at is None:
        return SessionState.ON_LUNCH
    return SessionState.WORKING


@dataclass(frozen=True)
class ClockSession:
    """Domain entity: one clock-in to clock-out attendance period."""

    session_id: int
    person_id: int
    project_id: int
    clock_in_at: datetime
    state: SessionState = SessionState.WORKING
    clock_out_at: Optional[datetime] = None
    lunch_start_at: Optional[datetime] = None
    lunch_end_at: Optional[datetime] = None
    lunch_duration_minutes: int = 0
    clock_in_location: GeoFix = field(default_factory=GeoFix)
    clock_out_location: GeoFix = field(default_factory=GeoFix)
    clock_blocked_until: Optional[datetime] = None
    hours: Optional[float] = None
    last_location_check_at: Optional[datetime] = None
    auto_clocked_out: bool = False
    auto_clock_out_reason: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.state != SessionState.NOT_CLOCKED

    @property
    def is_on_lunch(self) -> bool:
        return self.state == SessionState.ON_LUNCH

    @property
    def lunch_taken(self) -> bool:
        return self.lunch_start_at is not None

    def to_dict(self) -> dict[str, Any]:
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "session_id": self.session_id,
            "person_id": self.person_id,
            "project_id": self.project_id,
            "state": self.state.value,
            "clock_in_at": iso(self.clock_in_at),
            "clock_out_at": iso(self.clock_out_at),
            "lunch_start_at": iso(self.lunch_start_at),
            "lunch_end_at": iso(self.lunch_end_at),
            "lunch_duration_minutes": self.lunch_duration_minutes,
            "is_on_lunch": self.is_on_lunch,
            "clock_in_location": self.clock_in_location.to_dict(),
            "clock_out_location": self.clock_out_location.to_dict(),
            "clock_blocked_until": iso(self.clock_blocked_until),
            "hours": self.hours,
            "auto_clocked_out": self.auto_clocked_out,
            "auto_clock_out_reason": self.auto_clock_out_reason,
        }


def elapsed_seconds(now: datetime, clock_in_at: datetime, lunch_minutes: float = 0) -> float:
    """Worked time so far for an open session, for a caller-owned ticking display."""
    seconds = (now - clock_in_at).total_seconds() - (lunch_minutes or 0) * 60
    return max(seconds, 0.0)


@dataclass(frozen=True)
class Advisory:
    """Non-blocking notice attached to a successful transition."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


GEOFENCE_WARNING = "GEOFENCE_WARNING"
LOCATION_UNVERIFIED = "LOCATION_UNVERIFIED"
LOCATION_UNAVAILABLE = "LOCATION_UNAVAILABLE"
