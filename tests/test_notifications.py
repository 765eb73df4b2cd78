from __future__ import annotations

import requests

from src.timeclock.timeclock.notifications import (
    AutoClockOutAlert,
    LateClockAttempt,
    LoggingNotifier,
    WebhookSupervisorNotifier,
    build_notifier,
)

from tests.fakes import utc


class FakeResponse:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text


class FakeHttp:
    def __init__(self, response=None, exc=None):
        self.response = response or FakeResponse()
        self.exc = exc
        self.calls = []

    def post(self, url, json, headers, timeout):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.exc:
            raise self.exc
        return self.response


def late_attempt():
    return LateClockAttempt(
        person_id=7,
        project_id=1,
        scheduled_start_time="08:00:00",
        attempt_time="08:11 AM",
        minutes_late=11.0,
        person_name="Ana Lopez",
    )


def test_late_attempt_is_posted_as_json():
    http = FakeHttp()
    notifier = WebhookSupervisorNotifier("https://hooks.example/late", http=http, timeout=5, background=False)

    notifier.notify_late_clock_attempt(late_attempt())

    (call,) = http.calls
    assert call["url"] == "https://hooks.example/late"
    assert call["timeout"] == 5
    assert call["headers"]["X-Timeclock-Event"] == "late_clock_attempt"
    assert call["json"]["notification_type"] == "late_clock_attempt"
    assert call["json"]["minutes_late"] == 11.0
    assert call["json"]["scheduled_start_time"] == "08:00:00"


def test_auto_clock_out_datetimes_are_serialized():
    http = FakeHttp()
    notifier = WebhookSupervisorNotifier("https://hooks.example", http=http, background=False)

    notifier.notify_auto_clock_out(
        AutoClockOutAlert(
            person_id=7,
            project_id=1,
            session_id=5,
            reason="Left job site - 0.35 miles from site (limit: 0.25 miles)",
            hours=3.0,
            blocked_until=utc(2026, 3, 2, 19, 0),
        )
    )

    assert http.calls[0]["json"]["blocked_until"] == "2026-03-02T19:00:00+00:00"


def test_webhook_failures_are_logged_not_raised(caplog):
    failing = WebhookSupervisorNotifier(
        "https://hooks.example", http=FakeHttp(exc=requests.ConnectionError("down")), background=False
    )
    failing.notify_late_clock_attempt(late_attempt())

    rejected = WebhookSupervisorNotifier(
        "https://hooks.example", http=FakeHttp(FakeResponse(500, "oops")), background=False
    )
    rejected.notify_late_clock_attempt(late_attempt())

    assert "failed" in caplog.text
    assert "returned 500" in caplog.text


def test_background_delivery_completes_on_shutdown():
    http = FakeHttp()
    notifier = WebhookSupervisorNotifier("https://hooks.example", http=http)
    notifier.notify_late_clock_attempt(late_attempt())
    notifier.shutdown(wait=True)

    assert len(http.calls) == 1


def test_build_notifier_without_url_only_logs():
    assert isinstance(build_notifier(""), LoggingNotifier)
    assert isinstance(build_notifier("https://hooks.example"), WebhookSupervisorNotifier)
