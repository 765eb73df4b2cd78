from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from ..geo.model import GeoFix
from .model import ClockSession


class SessionRepository(Protocol):
    """Persistence for clock sessions.

    Writes are conditional: a transition whose precondition no longer holds at
    write time changes nothing and returns None (or raises ``AlreadyClockedIn``
    for a second open session), so concurrent requests cannot break the
    one-open-session and one-lunch rules.
    """

    def get_by_id(self, session_id: int) -> Optional[ClockSession]:
        raise NotImplementedError

    def get_open_for_person(self, person_id: int) -> Optional[ClockSession]:
        raise NotImplementedError

    def list_open(self) -> Sequence[ClockSession]:
        raise NotImplementedError

    def get_block_until(self, person_id: int) -> Optional[datetime]:
        """Latest ``clock_blocked_until`` across the person's sessions."""
        raise NotImplementedError

    def create_open(
        self,
        *,
        person_id: int,
        project_id: int,
        clock_in_at: datetime,
        location: GeoFix,
        entry_date: Optional[date] = None,
    ) -> ClockSession:
        raise NotImplementedError

    def start_lunch(self, *, session_id: int, at: datetime) -> Optional[ClockSession]:
        raise NotImplementedError

    def end_lunch(self, *, session_id: int, at: datetime, minutes: int) -> Optional[ClockSession]:
        raise NotImplementedError

    def close(
        self,
        *,
        session_id: int,
        clock_out_at: datetime,
        location: GeoFix,
        hours: float,
        lunch_duration_minutes: int,
        lunch_end_at: Optional[datetime] = None,
        hourly_rate: Optional[float] = None,
        is_holiday: bool = False,
        auto_reason: Optional[str] = None,
        blocked_until: Optional[datetime] = None,
    ) -> Optional[ClockSession]:
        raise NotImplementedError

    def record_location_check(self, *, session_id: int, lat: float, lng: float, at: datetime) -> bool:
        raise NotImplementedError
