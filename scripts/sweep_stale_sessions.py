"""Auto clock-out open sessions whose location has not been checked recently.

Meant to run from cron every few minutes:

    */5 * * * * cd /srv/timeclock && python scripts/sweep_stale_sessions.py
"""

from __future__ import annotations

import importlib
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.timeclock.timeclock.container import build_container

logger = logging.getLogger("sweep_stale_sessions")


def main() -> int:
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    logging.basicConfig(level=getattr(settings, "LOG_LEVEL", "INFO"), format="%(levelname)s %(name)s: %(message)s")

    container = build_container(db_config=settings.DB_CONFIG, settings=settings)
    closed = container.auto_clock_out.sweep_stale()
    for session in closed:
        logger.info("Closed session=%s person=%s project=%s", session.session_id, session.person_id, session.project_id)
    return len(closed)


if __name__ == "__main__":
    main()
