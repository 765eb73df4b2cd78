from __future__ import annotations

from enum import Enum


class SessionState(str, Enum):
    """Explicit state of a person's attendance on a project."""

    NOT_CLOCKED = "NOT_CLOCKED"
    WORKING = "WORKING"
    ON_LUNCH = "ON_LUNCH"


class LocationSource(str, Enum):
    DEVICE = "device"
    IP_FALLBACK = "ip_fallback"


class GeofenceMode(str, Enum):
    """How a project's site boundary applies to clock transitions.

    OFF        - location not required, no site configured.
    ADVISORY   - site configured but location not required; distance is informational.
    UNVERIFIED - location required but no site coordinates; capture and allow.
    ENFORCED   - location required and site configured; outside the radius blocks clock-in.
    """

    OFF = "OFF"
    ADVISORY = "ADVISORY"
    UNVERIFIED = "UNVERIFIED"
    ENFORCED = "ENFORCED"


class ErrorCategory(str, Enum):
    RETRYABLE = "RETRYABLE"
    POLICY_BLOCK = "POLICY_BLOCK"
    INVARIANT = "INVARIANT"


class SortKey(str, Enum):
    NAME = "name"
    HOURS = "hours"
    COST = "cost"
    ENTRIES = "entries"


class ReportView(str, Enum):
    FLAT = "flat"
    PROJECT = "project"
    PERSON = "person"
