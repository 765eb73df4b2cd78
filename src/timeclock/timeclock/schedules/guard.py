"""Schedule compliance guard.

Compares a clock-in attempt with the scheduled start time. The guard only
reports; the session manager decides whether to refuse the transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from typing import Optional

from ..common.datetime_utils import round_half_up
from ..core.constants import DEFAULT_LATE_GRACE_MINUTES


@dataclass(frozen=True)
class LatenessCheck:
    late: bool
    minutes_late: int
    early: bool = False
    minutes_early: int = 0
    scheduled_time: Optional[str] = None
    minutes_diff: float = 0.0

    @property
    def on_time(self) -> bool:
        return not self.late and not self.early


def parse_scheduled_time(value: str) -> Optional[time]:
    """Parse "HH:MM" or "HH:MM:SS"; None for anything else."""
    if not value:
        return None
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue
    return None


def check_lateness(
    now: datetime,
    scheduled_start_time: str,
    grace_minutes: int = DEFAULT_LATE_GRACE_MINUTES,
) -> LatenessCheck:
    """Compare ``now`` with today's scheduled start (same wall clock as ``now``).

    ``late``/``early`` are decided on the exact difference, so 10m30s late with a
    10 minute grace is late; the reported minute counts are rounded half-up.
    """
    start = parse_scheduled_time(scheduled_start_time)
    if start is None:
        return LatenessCheck(late=False, minutes_late=0, scheduled_time=scheduled_start_time)

    scheduled = datetime.combine(now.date(), start, tzinfo=now.tzinfo)
    diff_minutes = (now - scheduled).total_seconds() / 60

    return LatenessCheck(
        late=diff_minutes > grace_minutes,
        minutes_late=max(round_half_up(diff_minutes), 0),
        early=-diff_minutes > grace_minutes,
        minutes_early=max(round_half_up(-diff_minutes), 0),
        scheduled_time=scheduled_start_time,
        minutes_diff=diff_minutes,
    )


def format_scheduled_time(value: str) -> str:
    """Render "HH:MM:SS" as "h:mm AM/PM"; unparseable input is returned unchanged."""
    parsed = parse_scheduled_time(value)
    if parsed is None:
        return value
    hour = parsed.hour % 12 or 12
    suffix = "AM" if parsed.hour < 12 else "PM"
    return f"{hour}:{parsed.minute:02d} {suffix}"
