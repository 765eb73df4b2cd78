from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Person:
    """Domain entity: a worker who can clock in to projects.

    Note: Plain data object, no database access.
    """

    person_id: int
    first_name: str
    last_name: str
    hourly_rate: Optional[float] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
