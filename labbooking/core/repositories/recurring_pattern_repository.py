from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import UUID

from labbooking.core.entities.recurring_pattern import RecurringPattern


class RecurringPatternRepository(ABC):
    @abstractmethod
    def get(self, recurring_group_id: UUID) -> RecurringPattern | None:
        raise NotImplementedError

    @abstractmethod
    def add(self, pattern: RecurringPattern) -> None:
        raise NotImplementedError
