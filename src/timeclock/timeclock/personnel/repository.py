from __future__ import annotations

from typing import Optional, Protocol

from .model import Person


class PersonnelRepository(Protocol):
    def get_by_id(self, person_id: int) -> Optional[Person]:
        raise NotImplementedError
