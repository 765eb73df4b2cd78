from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional, Sequence

import requests

from ..common.datetime_utils import now_utc
from ..common.validators import as_float, is_valid_coordinate
from ..core.constants import DEFAULT_GEOFIX_TIMEOUT_MS
from ..core.enums import LocationSource
from .model import GeoFix

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "timeout"
DENIED_ERROR = "permission denied"


class LocationPermissionDenied(Exception):
    """Raised by a location provider when the user refused location access."""


class GeoFixAcquirer(ABC):
    """Obtains a location fix, or an explicit failure, within a bounded wait."""

    @abstractmethod
    def acquire(self, timeout_ms: int = DEFAULT_GEOFIX_TIMEOUT_MS) -> GeoFix:
        raise NotImplementedError


class SubmittedFixAcquirer(GeoFixAcquirer):
    """Fix captured by the client device and posted with the transition."""

    def __init__(self, payload: Optional[Mapping[str, Any]]):
        self._fix = GeoFix.from_payload(payload)

    def acquire(self, timeout_ms: int = DEFAULT_GEOFIX_TIMEOUT_MS) -> GeoFix:
        return self._fix


class ProviderFixAcquirer(GeoFixAcquirer):
    """Runs a blocking location provider with a timeout.

    The provider is called once per ``acquire`` so a platform permission prompt
    is triggered at most once per user action. Each call runs on its own daemon
    thread; a provider still running when the timeout expires is abandoned and
    its result is discarded, so it never delays a later ``acquire``.
    """

    def __init__(self, provider: Callable[[], GeoFix], *, clock: Callable = now_utc):
        self._provider = provider
        self._clock = clock

    def acquire(self, timeout_ms: int = DEFAULT_GEOFIX_TIMEOUT_MS) -> GeoFix:
        outcome: dict[str, Any] = {}

        def run() -> None:
            try:
                outcome["fix"] = self._provider()
            except Exception as e:
                outcome["error"] = e

        worker = threading.Thread(target=run, name="geofix", daemon=True)
        worker.start()
        worker.join(max(timeout_ms, 0) / 1000)
        if worker.is_alive():
            logger.info("Location fix timed out after %sms", timeout_ms)
            return GeoFix.failure(TIMEOUT_ERROR)

        error = outcome.get("error")
        if isinstance(error, LocationPermissionDenied):
            return GeoFix.failure(DENIED_ERROR)
        if error is not None:
            logger.warning("Location provider failed: %s", error)
            return GeoFix.failure(f"location unavailable: {error}")

        fix = outcome["fix"]
        if fix.has_location and fix.captured_at is None:
            return GeoFix.fix(
                fix.lat,
                fix.lng,
                accuracy=fix.accuracy,
                source=fix.source or LocationSource.DEVICE,
                captured_at=self._clock(),
            )
        return fix


class IpFallbackAcquirer(GeoFixAcquirer):
    """Coarse fix from an IP geolocation endpoint (``source=ip_fallback``).

    A ``{ip}`` placeholder in the URL is replaced with the client address.
    """

    def __init__(self, url: str, *, ip: Optional[str] = None, http: Any = requests, clock: Callable = now_utc):
        self._url = url.replace("{ip}", ip or "") if url else url
        self._http = http
        self._clock = clock

    def acquire(self, timeout_ms: int = DEFAULT_GEOFIX_TIMEOUT_MS) -> GeoFix:
        if not self._url:
            return GeoFix.failure("ip geolocation not configured")

        try:
            resp = self._http.get(self._url, timeout=max(timeout_ms, 1) / 1000)
            resp.raise_for_status()
            data = resp.json()
        except requests.Timeout:
            return GeoFix.failure(TIMEOUT_ERROR)
        except (requests.RequestException, ValueError) as e:
            logger.warning("IP geolocation lookup failed: %s", e)
            return GeoFix.failure(f"ip lookup failed: {e}")

        lat = as_float(data.get("latitude", data.get("lat")))
        lng = as_float(data.get("longitude", data.get("lng", data.get("lon"))))
        if not is_valid_coordinate(lat, lng):
            return GeoFix.failure("ip lookup returned no coordinates")

        return GeoFix.fix(
            lat,
            lng,
            accuracy=as_float(data.get("accuracy")),
            source=LocationSource.IP_FALLBACK,
            captured_at=self._clock(),
        )


class FallbackChainAcquirer(GeoFixAcquirer):
    """Try acquirers in order within one overall time budget.

    A permission denial stops the chain: falling back to a coarser source
    would hide the denial from the caller's help flow.
    """

    def __init__(self, acquirers: Sequence[GeoFixAcquirer]):
        self._acquirers = list(acquirers)

    def acquire(self, timeout_ms: int = DEFAULT_GEOFIX_TIMEOUT_MS) -> GeoFix:
        deadline = time.monotonic() + timeout_ms / 1000
        first_failure: Optional[GeoFix] = None

        for acquirer in self._acquirers:
            remaining_ms = int((deadline - time.monotonic()) * 1000)
            if remaining_ms <= 0:
                break
            fix = acquirer.acquire(remaining_ms)
            if fix.has_location:
                return fix
            if fix.is_denied:
                return fix
            first_failure = first_failure or fix

        return first_failure or GeoFix.failure(TIMEOUT_ERROR)
