from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID


class RecurrenceType(str, Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    CUSTOM = "CUSTOM"

    def interval_days(self, custom_interval_days: int | None = None) -> int:
        if self is RecurrenceType.WEEKLY:
            return 7
        if self is RecurrenceType.BIWEEKLY:
            return 14
        if self is RecurrenceType.MONTHLY:
            # Nominal only; monthly series step by calendar month
            return 30
        return custom_interval_days if custom_interval_days is not None else 7


@dataclass(slots=True)
class RecurringPattern:
    recurring_group_id: UUID
    pattern_type: RecurrenceType
    interval_days: int
    end_date: date | None = None
    occurrences: int | None = None
