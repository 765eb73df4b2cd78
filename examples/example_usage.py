"""Drive the service layer directly, without Flask.

Controllers are a thin layer; the clock rules live in ClockSessionManager and
the report math in PayrollReportService.
"""

import importlib
from datetime import date

from config import get_settings_module

from src.timeclock.timeclock.container import build_container


def main():
    settings = importlib.import_module(get_settings_module())
    container = build_container(db_config=settings.DB_CONFIG, settings=settings)

    result = container.clock_manager.clock_in(
        1,
        1,
        container.location_source({"lat": 30.0, "lng": -97.0, "accuracy": 12, "source": "device"}),
        skip_schedule_check=True,
    )
    print(result.to_dict())

    today = date.today()
    report = container.payroll_report_service.build_cost_report(start=today.replace(day=1), end=today, view="person")
    print(report.to_dict()["totals"])


if __name__ == "__main__":
    main()
