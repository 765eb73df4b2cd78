from __future__ import annotations

from src.timeclock.timeclock.core.enums import ErrorCategory
from src.timeclock.timeclock.sessions.errors import (
    AlreadyClockedIn,
    ClockBlocked,
    EarlyClockInBlocked,
    GeofenceViolation,
    LateClockInBlocked,
    LocationRequiredDenied,
    NotOnLunch,
    parse_clock_error,
)

from tests.fakes import utc


def test_late_message_round_trips_with_colons_in_time():
    err = parse_clock_error("LATE_CLOCK_IN_BLOCKED:11:08:00:00")

    assert isinstance(err, LateClockInBlocked)
    assert err.minutes_late == 11
    assert err.scheduled_time == "08:00:00"
    assert err.display_time == "8:00 AM"
    assert str(err) == "LATE_CLOCK_IN_BLOCKED:11:08:00:00"


def test_early_and_geofence_messages_parse():
    early = parse_clock_error(str(EarlyClockInBlocked(25, "07:30:00")))
    assert isinstance(early, EarlyClockInBlocked)
    assert (early.minutes_early, early.scheduled_time) == (25, "07:30:00")

    fence = parse_clock_error(str(GeofenceViolation(0.3455, 0.25)))
    assert isinstance(fence, GeofenceViolation)
    assert fence.distance_miles == 0.35


def test_blocked_until_survives_the_wire_form():
    until = utc(2026, 3, 2, 18, 30)
    err = parse_clock_error(str(ClockBlocked(until)))

    assert isinstance(err, ClockBlocked)
    assert err.blocked_until == until


def test_simple_codes_parse_and_opaque_strings_do_not():
    assert isinstance(parse_clock_error("ALREADY_CLOCKED_IN"), AlreadyClockedIn)
    assert isinstance(parse_clock_error("NOT_ON_LUNCH"), NotOnLunch)
    assert parse_clock_error("LATE_CLOCK_IN_BLOCKED:abc:08:00") is None
    assert parse_clock_error("Something went wrong") is None
    assert parse_clock_error("") is None
    assert parse_clock_error(None) is None


def test_categories_drive_refresh():
    assert AlreadyClockedIn(3).refresh is True
    assert LateClockInBlocked(11, "08:00:00").refresh is False
    assert LocationRequiredDenied("timeout").category == ErrorCategory.RETRYABLE
    assert LocationRequiredDenied("timeout").permission_denied is False


def test_to_dict_carries_named_fields():
    data = AlreadyClockedIn(3).to_dict()
    assert data == {"kind": "AlreadyClockedIn", "code": "ALREADY_CLOCKED_IN", "category": "INVARIANT", "open_project_id": 3}

    late = LateClockInBlocked(11, "08:00:00").to_dict()
    assert late["minutes_late"] == 11
    assert late["scheduled_time"] == "08:00:00"
