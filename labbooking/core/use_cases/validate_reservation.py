from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Sequence

from labbooking.core.entities.lab import SUNDAY, Lab, Workstation, day_of_week
from labbooking.core.errors import (
    InvalidReservationTimeError,
    LabClosedError,
    NoWorkstationsSelectedError,
    OutsideOperatingHoursError,
    WorkstationInactiveError,
    WorkstationNotFoundError,
    WorkstationNotInLabError,
)
from labbooking.core.repositories.lab_repository import LabRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def covered_days(start_time: datetime, end_time: datetime) -> list[date]:
    """Calendar days the window overlaps. An end at exactly midnight does not count the new day."""
    last = end_time.date()
    if last > start_time.date() and end_time.time() == time.min:
        last -= timedelta(days=1)
    days = [start_time.date()]
    while days[-1] < last:
        days.append(days[-1] + timedelta(days=1))
    return days


class ReservationValidator:
    """
    Checks a requested window and workstation selection against the lab catalog.

    Rules are checked in a fixed order and the first violation is raised:
    time range, operating hours, closed days, workstation selection.
    """

    def __init__(self, *, lab_repo: LabRepository, clock: Clock = utc_now, min_duration_minutes: int = 15) -> None:
        self._lab_repo = lab_repo
        self._clock = clock
        self._min_duration = timedelta(minutes=min_duration_minutes)

    def validate(
        self,
        lab: Lab,
        start_time: datetime,
        end_time: datetime,
        whole_lab: bool | None,
        workstation_ids: Sequence[int] | None,
    ) -> list[Workstation]:
        """Returns the resolved workstations (empty for whole-lab reservations)."""
        self.validate_times(start_time, end_time)
        self.validate_operating_hours(lab, start_time, end_time)
        self.validate_not_closed(lab, start_time, end_time)
        if whole_lab:
            return []
        return self.validate_workstations(lab, workstation_ids)

    def validate_times(self, start_time: datetime, end_time: datetime) -> None:
        if start_time >= end_time:
            logger.warning("Invalid time range: start %s is not before end %s", start_time, end_time)
            raise InvalidReservationTimeError("Start time must be before end time")

        now = self._clock()
        if start_time <= now:
            logger.warning("Invalid time: start %s is not in the future (now: %s)", start_time, now)
            raise InvalidReservationTimeError("Start time must be in the future")

        if end_time - start_time < self._min_duration:
            minutes = int((end_time - start_time).total_seconds() // 60)
            logger.warning("Invalid duration: %d minutes (minimum %s)", minutes, self._min_duration)
            raise InvalidReservationTimeError(
                f"Reservation duration must be at least {int(self._min_duration.total_seconds() // 60)} minutes"
            )

    def validate_operating_hours(self, lab: Lab, start_time: datetime, end_time: datetime) -> None:
        """Checks every calendar day the window touches; a window with hours to respect must stay within one day."""
        for day in covered_days(start_time, end_time):
            weekday = day_of_week(day)
            hours = self._lab_repo.get_operating_hours(lab.lab_id, weekday)

            if hours is not None:
                if hours.is_closed:
                    logger.warning("Lab %s is closed on day %d", lab.lab_id, weekday)
                    raise LabClosedError("Lab is closed on this day")
                self._check_within(start_time, end_time, hours.open_time, hours.close_time)
            elif lab.has_default_hours:
                self._check_within(start_time, end_time, lab.default_open_time, lab.default_close_time)
            elif weekday == SUNDAY:
                logger.warning("Lab %s is closed on Sundays by default", lab.lab_id)
                raise LabClosedError("Lab is closed on Sundays by default")

    @staticmethod
    def _check_within(start_time: datetime, end_time: datetime, open_time: time | None, close_time: time | None) -> None:
        if end_time.date() != start_time.date():
            logger.warning("Reservation %s - %s spans more than one day of operating hours", start_time, end_time)
            raise OutsideOperatingHoursError(
                f"Reservation must start and end on the same day within operating hours ({open_time} - {close_time})"
            )

        start_local = start_time.time()
        end_local = end_time.time()
        if (open_time is not None and start_local < open_time) or (close_time is not None and end_local > close_time):
            logger.warning("Reservation %s - %s is outside operating hours %s - %s", start_local, end_local, open_time, close_time)
            raise OutsideOperatingHoursError(
                f"Reservation time must be within operating hours ({open_time} - {close_time})"
            )

    def validate_not_closed(self, lab: Lab, start_time: datetime, end_time: datetime | None = None) -> None:
        for day in covered_days(start_time, end_time or start_time):
            for closure in self._lab_repo.list_closed_days(lab.lab_id, day):
                if closure.matches(lab.lab_id, day):
                    logger.warning("Lab %s is closed on %s (%s)", lab.lab_id, day, closure.reason or "no reason given")
                    raise LabClosedError(f"Lab is closed on {day.isoformat()}")

    def validate_workstations(self, lab: Lab, workstation_ids: Sequence[int] | None) -> list[Workstation]:
        if not workstation_ids:
            logger.warning("No workstations selected for non-whole-lab reservation")
            raise NoWorkstationsSelectedError()

        workstations = []
        for workstation_id in workstation_ids:
            workstation = self._lab_repo.get_workstation(workstation_id)
            if workstation is None:
                logger.warning("Workstation not found: %s", workstation_id)
                raise WorkstationNotFoundError(f"Workstation not found: {workstation_id}")
            if workstation.lab_id != lab.lab_id:
                logger.warning(
                    "Workstation %s belongs to lab %s but was requested for lab %s",
                    workstation_id, workstation.lab_id, lab.lab_id,
                )
                raise WorkstationNotInLabError(f"Workstation {workstation_id} does not belong to lab {lab.lab_id}")
            if not workstation.active:
                logger.warning("Workstation %s (%s) is inactive", workstation_id, workstation.identifier)
                raise WorkstationInactiveError(f"Workstation {workstation.identifier} is inactive")
            workstations.append(workstation)

        logger.debug("All %d workstations validated for lab %s", len(workstations), lab.lab_id)
        return workstations
