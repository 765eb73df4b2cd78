from __future__ import annotations

from typing import Any

from .enums import ErrorCategory


class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class NotFoundError(DomainError):
    """Raised when a referenced session, project or person does not exist."""


class ClockError(DomainError):
    """A refused clock transition.

    Subclasses carry named fields so callers can render the failure without a
    follow-up query. ``str(err)`` keeps the colon-delimited wire form used by
    older clients (``LATE_CLOCK_IN_BLOCKED:11:08:00:00``).
    """

    code: str = "CLOCK_ERROR"
    category: ErrorCategory = ErrorCategory.INVARIANT

    def wire_parts(self) -> tuple[Any, ...]:
        return ()

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def refresh(self) -> bool:
        """Invariant violations ask the client to re-fetch session state."""
        return self.category == ErrorCategory.INVARIANT

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "code": self.code, "category": self.category.value}

    def __str__(self) -> str:
        return ":".join([self.code, *(str(p) for p in self.wire_parts())])
