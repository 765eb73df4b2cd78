from __future__ import annotations

import logging
from typing import Any, Optional

from flask import jsonify

from ..core.enums import ErrorCategory
from ..core.exceptions import ClockError, DomainError, NotFoundError

logger = logging.getLogger(__name__)

_STATUS_BY_CATEGORY = {
    ErrorCategory.INVARIANT: 409,
    ErrorCategory.POLICY_BLOCK: 403,
    ErrorCategory.RETRYABLE: 422,
}


def ok(payload: Optional[dict[str, Any]] = None, status: int = 200):
    return jsonify({"success": True, **(payload or {})}), status


def failure(message: str, *, status: int, error: Optional[dict[str, Any]] = None, refresh: bool = False):
    return jsonify({"success": False, "error": error or {}, "message": message, "refresh": refresh}), status


def domain_failure(e: DomainError):
    """JSON failure for a domain error. ``message`` keeps the legacy string form."""
    if isinstance(e, ClockError):
        return failure(str(e), status=_STATUS_BY_CATEGORY[e.category], error=e.to_dict(), refresh=e.refresh)
    if isinstance(e, NotFoundError):
        return failure(str(e), status=404, error={"kind": type(e).__name__})
    return failure(str(e), status=400, error={"kind": type(e).__name__})


def unexpected_failure(action: str):
    logger.exception("Unexpected error during %s", action)
    return failure(f"System error during {action}", status=500, error={"kind": "InternalError"})
