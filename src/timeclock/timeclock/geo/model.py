from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from ..common.datetime_utils import parse_iso_datetime
from ..common.validators import as_float, is_valid_coordinate
from ..core.constants import DEFAULT_GEOFENCE_RADIUS_MILES
from ..core.enums import LocationSource


@dataclass(frozen=True)
class GeoFix:
    """A location fix, or an explicit failure to get one.

    The same shape is stored as the clock-in / clock-out location snapshot of a
    session, so every field is nullable.
    """

    lat: Optional[float] = None
    lng: Optional[float] = None
    accuracy: Optional[float] = None
    source: Optional[LocationSource] = None
    captured_at: Optional[datetime] = None
    error: Optional[str] = None

    @classmethod
    def fix(
        cls,
        lat: float,
        lng: float,
        *,
        accuracy: Optional[float] = None,
        source: LocationSource = LocationSource.DEVICE,
        captured_at: Optional[datetime] = None,
    ) -> "GeoFix":
        return cls(lat=lat, lng=lng, accuracy=accuracy, source=source, captured_at=captured_at)

    @classmethod
    def failure(cls, error: str) -> "GeoFix":
        return cls(error=error)

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "GeoFix":
        """Build from the client ``geoData`` shape (camelCase keys accepted)."""
        if not payload:
            return cls.failure("no location submitted")

        source_raw = payload.get("source")
        try:
            source = LocationSource(source_raw) if source_raw else None
        except ValueError:
            source = None

        captured_raw = payload.get("captured_at", payload.get("capturedAt"))
        try:
            captured_at = parse_iso_datetime(captured_raw) if isinstance(captured_raw, str) else None
        except ValueError:
            captured_at = None

        return cls(
            lat=as_float(payload.get("lat")),
            lng=as_float(payload.get("lng")),
            accuracy=as_float(payload.get("accuracy")),
            source=source,
            captured_at=captured_at,
            error=payload.get("error") or None,
        )

    @property
    def has_location(self) -> bool:
        return self.error is None and is_valid_coordinate(self.lat, self.lng)

    @property
    def is_denied(self) -> bool:
        return bool(self.error) and "denied" in self.error.lower()

    def to_dict(self) -> dict[str, Any]:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "accuracy": self.accuracy,
            "source": self.source.value if self.source else None,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class SiteGeofence:
    """Circular boundary around a job site center."""

    site_lat: float
    site_lng: float
    radius_miles: float = DEFAULT_GEOFENCE_RADIUS_MILES

    @classmethod
    def from_coordinates(cls, site_lat: Any, site_lng: Any, radius_miles: Any = None) -> Optional["SiteGeofence"]:
        """Return a geofence, or None when the site coordinates are absent or invalid."""
        lat = as_float(site_lat)
        lng = as_float(site_lng)
        if not is_valid_coordinate(lat, lng):
            return None

        radius = as_float(radius_miles)
        if radius is None or radius <= 0:
            radius = DEFAULT_GEOFENCE_RADIUS_MILES
        return cls(site_lat=lat, site_lng=lng, radius_miles=radius)


@dataclass(frozen=True)
class GeofenceCheck:
    within: bool
    distance_miles: float
    radius_miles: float
