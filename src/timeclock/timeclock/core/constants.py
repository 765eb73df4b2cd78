"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_LATE_GRACE_MINUTES = 10
DEFAULT_GEOFIX_TIMEOUT_MS = 10_000
DEFAULT_GEOFENCE_RADIUS_MILES = 0.25
EARTH_RADIUS_MILES = 3958.8

DEFAULT_OVERTIME_MULTIPLIER = 1.5
DEFAULT_HOLIDAY_MULTIPLIER = 2.0
DEFAULT_WEEKLY_OVERTIME_THRESHOLD = 40.0

DEFAULT_MONITOR_THROTTLE_SECONDS = 30
DEFAULT_AUTO_CLOCK_OUT_BLOCK_HOURS = 8
DEFAULT_STALE_LOCATION_MINUTES = 30

HOURS_PRECISION = 4
COST_DISCREPANCY_TOLERANCE = 0.005
