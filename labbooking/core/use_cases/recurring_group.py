from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable
from uuid import UUID

from labbooking.core.entities.recurring_pattern import RecurrenceType
from labbooking.core.entities.reservation import Reservation
from labbooking.core.errors import AlreadyHasPendingProposalError, InvalidRecurringPatternError, ReservationNotFoundError
from labbooking.core.repositories.reservation_repository import ReservationRepository
from labbooking.core.use_cases.commands import RecurringConfig

logger = logging.getLogger(__name__)


def parse_pattern_type(raw: str | None) -> RecurrenceType:
    if not raw:
        raise InvalidRecurringPatternError("Pattern type is required")
    try:
        return RecurrenceType(raw.strip().upper())
    except ValueError as e:
        raise InvalidRecurringPatternError(f"Invalid pattern type: {raw}") from e


def validate_recurring_config(config: RecurringConfig | None, max_occurrences: int) -> RecurrenceType:
    if config is None:
        raise InvalidRecurringPatternError("Recurring configuration is required")

    pattern_type = parse_pattern_type(config.pattern_type)

    if config.occurrences is None and config.end_date is None:
        raise InvalidRecurringPatternError("Either occurrences or an end date is required")
    if config.occurrences is not None and not 1 <= config.occurrences <= max_occurrences:
        raise InvalidRecurringPatternError(f"Occurrences must be between 1 and {max_occurrences}")
    if pattern_type is RecurrenceType.CUSTOM and config.interval_days is not None and config.interval_days < 1:
        raise InvalidRecurringPatternError("Interval days must be at least 1")
    return pattern_type


def add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def compute_occurrence_dates(
    start_date: date,
    pattern_type: RecurrenceType,
    *,
    interval_days: int | None = None,
    end_date: date | None = None,
    occurrences: int | None = None,
    max_occurrences: int = 52,
) -> list[date]:
    """
    Dates of a recurring series, starting with `start_date`.

    The series stops at `occurrences` dates or after `end_date` (inclusive), whichever comes first,
    and never exceeds `max_occurrences`.
    """
    limit = min(occurrences, max_occurrences) if occurrences is not None else max_occurrences
    step = timedelta(days=pattern_type.interval_days(interval_days))

    dates: list[date] = []
    current = start_date
    while len(dates) < limit:
        if end_date is not None and current > end_date:
            break
        dates.append(current)
        if pattern_type is RecurrenceType.MONTHLY:
            current = add_months(start_date, len(dates))
        else:
            current = current + step
    return dates


@dataclass(frozen=True, slots=True)
class FanOutResult:
    applied: list[Reservation]
    skipped: list[Reservation]


class RecurringGroupCoordinator:
    """
    Loads the members of a recurring group and runs a per-member operation over them.

    A member that already has a pending edit proposal is skipped with a warning rather than aborting
    the batch; every other error propagates.
    """

    def __init__(self, *, reservation_repo: ReservationRepository) -> None:
        self._reservation_repo = reservation_repo

    def load_members(self, recurring_group_id: UUID) -> list[Reservation]:
        members = self._reservation_repo.list_by_recurring_group(recurring_group_id)
        if not members:
            logger.warning("No reservations found for recurring group %s", recurring_group_id)
            raise ReservationNotFoundError(f"No reservations found for recurring group: {recurring_group_id}")
        return members

    @staticmethod
    def representative(members: list[Reservation]) -> Reservation:
        # All members of a group share lab and owner
        return members[0]

    def fan_out(
        self,
        members: list[Reservation],
        operation: Callable[[Reservation], bool],
    ) -> FanOutResult:
        """`operation` returns False when the member was left untouched on purpose."""
        applied: list[Reservation] = []
        skipped: list[Reservation] = []
        for member in members:
            try:
                changed = operation(member)
            except AlreadyHasPendingProposalError:
                logger.warning("Reservation %s already has a pending edit proposal, skipping", member.reservation_id)
                skipped.append(member)
                continue
            (applied if changed else skipped).append(member)
        return FanOutResult(applied=applied, skipped=skipped)
