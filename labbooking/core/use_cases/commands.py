from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True, slots=True)
class RecurringConfig:
    pattern_type: str | None
    interval_days: int | None = None
    end_date: date | None = None
    occurrences: int | None = None


@dataclass(frozen=True, slots=True)
class CreateReservationCommand:
    lab_id: int
    start_time: datetime
    end_time: datetime
    description: str | None = None
    whole_lab: bool | None = False
    workstation_ids: list[int] = field(default_factory=list)
    recurring: RecurringConfig | None = None


@dataclass(frozen=True, slots=True)
class EditReservationCommand:
    start_time: datetime
    end_time: datetime
    description: str | None = None
    whole_lab: bool | None = False
    workstation_ids: list[int] | None = None
