from __future__ import annotations

from datetime import timedelta

import pytest

from labbooking.core.entities.lab import Lab, day_of_week
from labbooking.core.errors import (
    InvalidReservationTimeError,
    LabClosedError,
    NoWorkstationsSelectedError,
    OutsideOperatingHoursError,
    WorkstationInactiveError,
    WorkstationNotFoundError,
    WorkstationNotInLabError,
)
from labbooking.core.use_cases.validate_reservation import ReservationValidator
from labbooking.infrastructure.repositories.lab_repository_impl import LabRepositoryImpl
from labbooking.tests.factories import CHEM_LAB, NOW, PHYSICS_LAB, PROFESSOR_ID, at, create_command, fixed_clock


@pytest.fixture()
def validator(db) -> ReservationValidator:
    return ReservationValidator(lab_repo=LabRepositoryImpl(db), clock=fixed_clock)


@pytest.fixture()
def chem(db) -> Lab:
    return LabRepositoryImpl(db).get(CHEM_LAB)


@pytest.fixture()
def physics(db) -> Lab:
    return LabRepositoryImpl(db).get(PHYSICS_LAB)


def test_day_of_week_counts_from_sunday() -> None:
    assert day_of_week(NOW.date()) == 1
    assert day_of_week((NOW - timedelta(days=1)).date()) == 0
    assert day_of_week((NOW + timedelta(days=5)).date()) == 6


def test_valid_whole_lab_window_needs_no_workstations(validator, chem) -> None:
    assert validator.validate(chem, at(1, 10), at(1, 12), True, None) == []


def test_valid_partial_reservation_resolves_workstations(validator, chem) -> None:
    workstations = validator.validate(chem, at(1, 10), at(1, 12), False, [11, 12])

    assert [w.identifier for w in workstations] == ["CH-01", "CH-02"]


@pytest.mark.parametrize(
    "start, end, message",
    [
        (at(1, 12), at(1, 10), "before end"),
        (at(1, 10), at(1, 10), "before end"),
        (NOW, NOW + timedelta(hours=1), "future"),
        (at(-1, 10), at(-1, 12), "future"),
        (at(1, 10), at(1, 10, 14), "at least 15 minutes"),
    ],
)
def test_invalid_times(validator, chem, start, end, message) -> None:
    with pytest.raises(InvalidReservationTimeError, match=message):
        validator.validate(chem, start, end, True, None)


def test_exactly_minimum_duration_is_allowed(validator, chem) -> None:
    validator.validate(chem, at(1, 10), at(1, 10, 15), True, None)


def test_time_rule_is_checked_before_everything_else(validator, chem) -> None:
    # Past, outside hours and without workstations: only the time error surfaces
    with pytest.raises(InvalidReservationTimeError):
        validator.validate(chem, at(-1, 5), at(-1, 6), False, [])


def test_outside_default_hours(validator, chem) -> None:
    with pytest.raises(OutsideOperatingHoursError):
        validator.validate(chem, at(1, 7), at(1, 9), True, None)
    with pytest.raises(OutsideOperatingHoursError):
        validator.validate(chem, at(1, 19), at(1, 21), True, None)


def test_window_touching_default_hours_is_allowed(validator, chem) -> None:
    validator.validate(chem, at(1, 8), at(1, 20), True, None)


def test_specific_weekday_hours_override_defaults(validator, chem) -> None:
    # Saturday 09:00-13:00
    validator.validate(chem, at(5, 9), at(5, 13), True, None)
    with pytest.raises(OutsideOperatingHoursError):
        validator.validate(chem, at(5, 12), at(5, 14), True, None)


def test_weekday_marked_closed(validator, chem) -> None:
    with pytest.raises(LabClosedError):
        validator.validate(chem, at(6, 10), at(6, 12), True, None)


def test_sunday_is_closed_without_default_hours(validator, physics) -> None:
    with pytest.raises(LabClosedError, match="Sundays"):
        validator.validate(physics, at(6, 10), at(6, 12), True, None)


def test_lab_without_hours_is_open_on_weekdays(validator, physics) -> None:
    validator.validate(physics, at(1, 6), at(1, 23), True, None)


def test_lab_specific_closed_day(validator, chem, physics) -> None:
    # 2026-03-10
    with pytest.raises(LabClosedError, match="2026-03-10"):
        validator.validate(chem, at(8, 10), at(8, 12), True, None)
    validator.validate(physics, at(8, 10), at(8, 12), True, None)


def test_global_closed_day_applies_to_every_lab(validator, chem, physics) -> None:
    # 2026-04-03
    for lab in (chem, physics):
        with pytest.raises(LabClosedError):
            validator.validate(lab, at(32, 10), at(32, 12), True, None)


@pytest.mark.parametrize(
    "start, end",
    [
        (at(1, 19), at(2, 9)),
        (at(1, 10), at(3, 12)),
        (at(1, 10), at(2, 10)),
    ],
)
def test_window_spanning_days_is_outside_operating_hours(validator, chem, start, end) -> None:
    with pytest.raises(OutsideOperatingHoursError, match="same day"):
        validator.validate(chem, start, end, True, None)


def test_overnight_window_is_refused_on_create(booking, professor) -> None:
    with pytest.raises(OutsideOperatingHoursError):
        booking.lifecycle.create(create_command(start_time=at(1, 19), end_time=at(2, 9)), professor)
    assert booking.lifecycle.get_by_user(PROFESSOR_ID) == []


def test_lab_without_hours_allows_overnight_weekday_window(validator, physics) -> None:
    validator.validate(physics, at(1, 20), at(2, 8), True, None)
    # Saturday evening until exactly midnight does not touch Sunday
    validator.validate(physics, at(5, 22), at(6, 0), True, None)


def test_window_running_into_sunday_or_closed_day(validator, physics) -> None:
    with pytest.raises(LabClosedError, match="Sundays"):
        validator.validate(physics, at(5, 20), at(6, 2), True, None)
    with pytest.raises(LabClosedError, match="2026-04-03"):
        validator.validate(physics, at(31, 20), at(32, 8), True, None)


@pytest.mark.parametrize("workstation_ids", [None, []])
def test_partial_reservation_requires_workstations(validator, chem, workstation_ids) -> None:
    with pytest.raises(NoWorkstationsSelectedError):
        validator.validate(chem, at(1, 10), at(1, 12), False, workstation_ids)


def test_unknown_workstation(validator, chem) -> None:
    with pytest.raises(WorkstationNotFoundError):
        validator.validate(chem, at(1, 10), at(1, 12), False, [11, 999])


def test_workstation_of_another_lab(validator, chem) -> None:
    with pytest.raises(WorkstationNotInLabError):
        validator.validate(chem, at(1, 10), at(1, 12), False, [21])


def test_inactive_workstation(validator, chem) -> None:
    with pytest.raises(WorkstationInactiveError, match="CH-03"):
        validator.validate(chem, at(1, 10), at(1, 12), False, [13])


def test_whole_lab_ignores_workstation_selection(validator, chem) -> None:
    assert validator.validate(chem, at(1, 10), at(1, 12), True, [13, 999]) == []


def test_minimum_duration_is_configurable(db, chem) -> None:
    strict = ReservationValidator(lab_repo=LabRepositoryImpl(db), clock=fixed_clock, min_duration_minutes=60)

    with pytest.raises(InvalidReservationTimeError, match="60 minutes"):
        strict.validate(chem, at(1, 10), at(1, 10, 45), True, None)
