from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .core.constants import (
    DEFAULT_AUTO_CLOCK_OUT_BLOCK_HOURS,
    DEFAULT_GEOFIX_TIMEOUT_MS,
    DEFAULT_LATE_GRACE_MINUTES,
    DEFAULT_MONITOR_THROTTLE_SECONDS,
    DEFAULT_STALE_LOCATION_MINUTES,
)
from .database.connection import DBConfig, DatabaseConnection
from .geo.acquirer import FallbackChainAcquirer, GeoFixAcquirer, IpFallbackAcquirer, SubmittedFixAcquirer
from .monitor.location_monitor import LocationMonitor
from .notifications import SupervisorNotifier, build_notifier
from .payroll.mysql_payroll_repository import (
    MySQLHolidayCalendar,
    MySQLPayrollSettingsRepository,
    MySQLTimeEntryRepository,
    MySQLWeekCloseoutRepository,
)
from .payroll.service import PayrollReportService
from .personnel.mysql_personnel_repository import MySQLPersonnelRepository
from .projects.mysql_project_repository import MySQLProjectRepository
from .schedules.mysql_schedule_repository import MySQLScheduleRepository
from .sessions.enforcement import AutoClockOutService
from .sessions.mysql_session_repository import MySQLSessionRepository
from .sessions.service import ClockSessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection

    projects_repo: MySQLProjectRepository
    personnel_repo: MySQLPersonnelRepository
    schedules_repo: MySQLScheduleRepository
    sessions_repo: MySQLSessionRepository
    time_entries_repo: MySQLTimeEntryRepository
    payroll_settings_repo: MySQLPayrollSettingsRepository
    holidays_repo: MySQLHolidayCalendar
    closeouts_repo: MySQLWeekCloseoutRepository

    notifier: SupervisorNotifier
    clock_manager: ClockSessionManager
    auto_clock_out: AutoClockOutService
    location_monitor: LocationMonitor
    payroll_report_service: PayrollReportService

    ip_geolocation_url: str = ""

    def location_source(self, geo_data: Optional[Mapping[str, Any]], client_ip: Optional[str] = None) -> Optional[GeoFixAcquirer]:
        """Acquirer for one transition: the submitted fix, then an IP lookup when configured."""
        chain: list[GeoFixAcquirer] = []
        if geo_data:
            chain.append(SubmittedFixAcquirer(geo_data))
        if self.ip_geolocation_url:
            chain.append(IpFallbackAcquirer(self.ip_geolocation_url, ip=client_ip))
        if not chain:
            return None
        return chain[0] if len(chain) == 1 else FallbackChainAcquirer(chain)


def _timezone(name: str):
    if not name or name.upper() == "UTC":
        return None
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning("Unknown TIMEZONE %r, schedules are compared in UTC", name)
        return None


def build_container(*, db_config: dict, settings: Any = None) -> Container:
    def setting(name: str, default: Any) -> Any:
        return getattr(settings, name, default) if settings is not None else default

    conn = DatabaseConnection.get_instance(DBConfig.from_mapping(db_config))

    projects_repo = MySQLProjectRepository(conn)
    personnel_repo = MySQLPersonnelRepository(conn)
    schedules_repo = MySQLScheduleRepository(conn)
    sessions_repo = MySQLSessionRepository(conn)
    time_entries_repo = MySQLTimeEntryRepository(conn)
    payroll_settings_repo = MySQLPayrollSettingsRepository(conn)
    holidays_repo = MySQLHolidayCalendar(conn)
    closeouts_repo = MySQLWeekCloseoutRepository(conn)

    notifier = build_notifier(setting("SUPERVISOR_WEBHOOK_URL", ""))
    clock_manager = ClockSessionManager(
        sessions_repo,
        projects_repo,
        personnel_repo,
        schedules_repo,
        notifier=notifier,
        holidays=holidays_repo,
        grace_minutes=setting("LATE_GRACE_MINUTES", DEFAULT_LATE_GRACE_MINUTES),
        block_early_clock_in=setting("BLOCK_EARLY_CLOCK_IN", False),
        geofix_timeout_ms=setting("GEOFIX_TIMEOUT_MS", DEFAULT_GEOFIX_TIMEOUT_MS),
        timezone=_timezone(setting("TIMEZONE", "UTC")),
    )
    auto_clock_out = AutoClockOutService(
        clock_manager,
        sessions_repo,
        projects_repo,
        notifier=notifier,
        block_hours=setting("AUTO_CLOCK_OUT_BLOCK_HOURS", DEFAULT_AUTO_CLOCK_OUT_BLOCK_HOURS),
        stale_minutes=setting("STALE_LOCATION_MINUTES", DEFAULT_STALE_LOCATION_MINUTES),
    )
    location_monitor = LocationMonitor(
        throttle_seconds=setting("MONITOR_THROTTLE_SECONDS", DEFAULT_MONITOR_THROTTLE_SECONDS),
        geofix_timeout_ms=setting("GEOFIX_TIMEOUT_MS", DEFAULT_GEOFIX_TIMEOUT_MS),
    )
    location_monitor.on_sample(auto_clock_out.handle_sample)
    location_monitor.on_drift(auto_clock_out.handle_drift)

    payroll_report_service = PayrollReportService(time_entries_repo, payroll_settings_repo, closeouts_repo)

    return Container(
        conn=conn,
        projects_repo=projects_repo,
        personnel_repo=personnel_repo,
        schedules_repo=schedules_repo,
        sessions_repo=sessions_repo,
        time_entries_repo=time_entries_repo,
        payroll_settings_repo=payroll_settings_repo,
        holidays_repo=holidays_repo,
        closeouts_repo=closeouts_repo,
        notifier=notifier,
        clock_manager=clock_manager,
        auto_clock_out=auto_clock_out,
        location_monitor=location_monitor,
        payroll_report_service=payroll_report_service,
        ip_geolocation_url=setting("IP_GEOLOCATION_URL", ""),
    )
