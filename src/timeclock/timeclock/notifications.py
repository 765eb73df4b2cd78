"""Supervisor alerts for late clock-in attempts and automatic clock-outs.

Delivery is fire-and-forget: a failed or slow webhook is logged and never
affects the clock transition that triggered it.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

import requests

from .common.datetime_utils import now_utc

logger = logging.getLogger(__name__)

LATE_CLOCK_ATTEMPT = "late_clock_attempt"
AUTO_CLOCK_OUT = "auto_clock_out"


@dataclass(frozen=True)
class LateClockAttempt:
    person_id: int
    project_id: int
    scheduled_start_time: str
    attempt_time: str
    minutes_late: float
    person_name: Optional[str] = None
    project_name: Optional[str] = None


@dataclass(frozen=True)
class AutoClockOutAlert:
    person_id: int
    project_id: int
    session_id: int
    reason: str
    hours: float
    blocked_until: Optional[datetime] = None
    distance_miles: Optional[float] = None
    radius_miles: Optional[float] = None
    person_name: Optional[str] = None


class SupervisorNotifier(Protocol):
    def notify_late_clock_attempt(self, attempt: LateClockAttempt) -> None:
        raise NotImplementedError

    def notify_auto_clock_out(self, alert: AutoClockOutAlert) -> None:
        raise NotImplementedError


class LoggingNotifier(SupervisorNotifier):
    """Used when no webhook is configured: alerts only reach the log."""

    def notify_late_clock_attempt(self, attempt: LateClockAttempt) -> None:
        logger.warning(
            "Late clock-in blocked: person=%s project=%s scheduled=%s attempt=%s minutes_late=%.1f",
            attempt.person_id,
            attempt.project_id,
            attempt.scheduled_start_time,
            attempt.attempt_time,
            attempt.minutes_late,
        )

    def notify_auto_clock_out(self, alert: AutoClockOutAlert) -> None:
        logger.warning(
            "Auto clock-out: person=%s project=%s session=%s reason=%s",
            alert.person_id,
            alert.project_id,
            alert.session_id,
            alert.reason,
        )


def _payload(event_type: str, body: Any) -> dict[str, Any]:
    data = asdict(body)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
    return {"notification_type": event_type, "sent_at": now_utc().isoformat(), **data}


class WebhookSupervisorNotifier(SupervisorNotifier):
    """POSTs alerts as JSON to a supervisor webhook on a background worker."""

    def __init__(
        self,
        url: str,
        *,
        http: Any = requests,
        timeout: float = 10,
        background: bool = True,
    ):
        self._url = url
        self._http = http
        self._timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify") if background else None

    def notify_late_clock_attempt(self, attempt: LateClockAttempt) -> None:
        self._dispatch(LATE_CLOCK_ATTEMPT, _payload(LATE_CLOCK_ATTEMPT, attempt))

    def notify_auto_clock_out(self, alert: AutoClockOutAlert) -> None:
        self._dispatch(AUTO_CLOCK_OUT, _payload(AUTO_CLOCK_OUT, alert))

    def shutdown(self, *, wait: bool = True) -> None:
        if self._executor:
            self._executor.shutdown(wait=wait)

    def _dispatch(self, event_type: str, payload: dict[str, Any]) -> None:
        if self._executor is None:
            self._fire(event_type, payload)
            return
        self._executor.submit(self._fire, event_type, payload)

    def _fire(self, event_type: str, payload: dict[str, Any]) -> bool:
        try:
            resp = self._http.post(
                self._url,
                json=payload,
                headers={"X-Timeclock-Event": event_type},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error("Supervisor webhook %s failed: %s", event_type, e)
            return False

        if resp.status_code >= 400:
            logger.warning("Supervisor webhook %s returned %s: %s", event_type, resp.status_code, resp.text[:200])
            return False

        logger.info("Supervisor webhook %s sent (%s)", event_type, resp.status_code)
        return True


def build_notifier(url: Optional[str]) -> SupervisorNotifier:
    return WebhookSupervisorNotifier(url) if url else LoggingNotifier()
