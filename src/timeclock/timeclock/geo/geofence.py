from __future__ import annotations

import math

from ..core.constants import EARTH_RADIUS_MILES
from .model import GeofenceCheck, GeoFix, SiteGeofence


def distance_miles(fix_lat: float, fix_lng: float, site_lat: float, site_lng: float) -> float:
    """Great-circle (haversine) distance in miles."""
    phi1 = math.radians(fix_lat)
    phi2 = math.radians(site_lat)
    dphi = math.radians(site_lat - fix_lat)
    dlambda = math.radians(site_lng - fix_lng)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_within(fix_lat: float, fix_lng: float, site_lat: float, site_lng: float, radius_miles: float) -> bool:
    # Boundary is inclusive.
    return distance_miles(fix_lat, fix_lng, site_lat, site_lng) <= radius_miles


def check_geofence(fix: GeoFix, geofence: SiteGeofence) -> GeofenceCheck:
    """Validate a fix that has a location against a configured site."""
    distance = distance_miles(fix.lat, fix.lng, geofence.site_lat, geofence.site_lng)
    return GeofenceCheck(
        within=distance <= geofence.radius_miles,
        distance_miles=distance,
        radius_miles=geofence.radius_miles,
    )
