from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time


def day_of_week(day: date) -> int:
    """0 = Sunday, 1 = Monday, ..., 6 = Saturday."""
    return (day.weekday() + 1) % 7


SUNDAY = 0


@dataclass(slots=True)
class Lab:
    lab_id: int
    name: str
    default_open_time: time | None = None
    default_close_time: time | None = None

    @property
    def has_default_hours(self) -> bool:
        return self.default_open_time is not None and self.default_close_time is not None


@dataclass(slots=True)
class Workstation:
    workstation_id: int
    lab_id: int
    identifier: str
    active: bool = True


@dataclass(slots=True)
class LabOperatingHours:
    """Per-weekday override of a lab's default hours."""

    lab_id: int
    day_of_week: int
    open_time: time | None = None
    close_time: time | None = None
    is_closed: bool = False


@dataclass(slots=True)
class LabClosedDay:
    """
    A closure on a specific date or on a recurring weekday.

    `lab_id` None means the closure applies to every lab.
    """

    lab_id: int | None
    specific_date: date | None = None
    recurring_day_of_week: int | None = None
    reason: str | None = None

    def matches(self, lab_id: int, day: date) -> bool:
        if self.lab_id is not None and self.lab_id != lab_id:
            return False
        if self.specific_date is not None and self.specific_date == day:
            return True
        return self.recurring_day_of_week is not None and self.recurring_day_of_week == day_of_week(day)


@dataclass(frozen=True, slots=True)
class LabManagerAssignment:
    user_id: int
    lab_id: int
    is_primary: bool = False
