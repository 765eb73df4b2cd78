from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import GeofenceMode
from ..geo.model import SiteGeofence


@dataclass(frozen=True)
class Project:
    """Read model of a job site project as seen by the time clock."""

    project_id: int
    name: str
    time_clock_enabled: bool = True
    require_clock_location: bool = False
    geofence: Optional[SiteGeofence] = None

    @property
    def geofence_mode(self) -> GeofenceMode:
        if self.require_clock_location:
            return GeofenceMode.ENFORCED if self.geofence else GeofenceMode.UNVERIFIED
        return GeofenceMode.ADVISORY if self.geofence else GeofenceMode.OFF
