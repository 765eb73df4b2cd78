"""Time clock policy settings shared by every environment."""

import os

# Schedule compliance
LATE_GRACE_MINUTES = int(os.getenv("LATE_GRACE_MINUTES", "10"))
BLOCK_EARLY_CLOCK_IN = bool(int(os.getenv("BLOCK_EARLY_CLOCK_IN", "0")))
# IANA zone used to compare clock-ins with scheduled start times
TIMEZONE = os.getenv("TIMEZONE", "UTC")

# Location
GEOFIX_TIMEOUT_MS = int(os.getenv("GEOFIX_TIMEOUT_MS", "10000"))
IP_GEOLOCATION_URL = os.getenv("IP_GEOLOCATION_URL", "")

# Monitoring and auto clock-out
# Minimum gap between two accepted location reports for one session
MONITOR_THROTTLE_SECONDS = int(os.getenv("MONITOR_THROTTLE_SECONDS", "30"))
AUTO_CLOCK_OUT_BLOCK_HOURS = float(os.getenv("AUTO_CLOCK_OUT_BLOCK_HOURS", "8"))
STALE_LOCATION_MINUTES = int(os.getenv("STALE_LOCATION_MINUTES", "30"))

# Supervisor alerts (late attempts, auto clock-outs); empty means log only
SUPERVISOR_WEBHOOK_URL = os.getenv("SUPERVISOR_WEBHOOK_URL", "")
