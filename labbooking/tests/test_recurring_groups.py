from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest

from labbooking.core.entities.recurring_pattern import RecurrenceType
from labbooking.core.entities.reservation import ReservationStatus
from labbooking.core.errors import (
    EditProposalNotFoundError,
    InvalidRecurringPatternError,
    InvalidStateError,
    LabClosedError,
    NotAuthorizedError,
    ReservationNotFoundError,
)
from labbooking.core.notifications.notification_sink import NotificationType
from labbooking.core.use_cases.commands import RecurringConfig
from labbooking.core.use_cases.recurring_group import compute_occurrence_dates, validate_recurring_config
from labbooking.infrastructure.repositories.recurring_pattern_repository_impl import RecurringPatternRepositoryImpl
from labbooking.services.booking_service import open_booking_context
from labbooking.tests.factories import at, create_command, edit_command, weekly_command


@pytest.fixture()
def series(booking, professor):
    return booking.lifecycle.create_recurring(weekly_command(occurrences=3), professor)


# -----------------------------
# Occurrence dates
# -----------------------------
def test_weekly_and_biweekly_dates() -> None:
    start = date(2026, 3, 4)

    assert compute_occurrence_dates(start, RecurrenceType.WEEKLY, occurrences=3) == [
        date(2026, 3, 4),
        date(2026, 3, 11),
        date(2026, 3, 18),
    ]
    assert compute_occurrence_dates(start, RecurrenceType.BIWEEKLY, occurrences=2) == [
        date(2026, 3, 4),
        date(2026, 3, 18),
    ]


def test_monthly_dates_clamp_to_month_end() -> None:
    assert compute_occurrence_dates(date(2026, 1, 31), RecurrenceType.MONTHLY, occurrences=4) == [
        date(2026, 1, 31),
        date(2026, 2, 28),
        date(2026, 3, 31),
        date(2026, 4, 30),
    ]


def test_custom_interval_and_inclusive_end_date() -> None:
    dates = compute_occurrence_dates(
        date(2026, 3, 2),
        RecurrenceType.CUSTOM,
        interval_days=3,
        end_date=date(2026, 3, 11),
    )

    assert dates == [date(2026, 3, 2), date(2026, 3, 5), date(2026, 3, 8), date(2026, 3, 11)]


def test_series_is_capped() -> None:
    dates = compute_occurrence_dates(date(2026, 3, 2), RecurrenceType.CUSTOM, interval_days=1, end_date=date(2027, 1, 1), max_occurrences=10)

    assert len(dates) == 10


@pytest.mark.parametrize(
    "config, message",
    [
        (None, "required"),
        (RecurringConfig(pattern_type=None, occurrences=3), "required"),
        (RecurringConfig(pattern_type="DAILY", occurrences=3), "Invalid pattern type"),
        (RecurringConfig(pattern_type="WEEKLY"), "occurrences or an end date"),
        (RecurringConfig(pattern_type="WEEKLY", occurrences=0), "between 1 and 52"),
        (RecurringConfig(pattern_type="WEEKLY", occurrences=53), "between 1 and 52"),
        (RecurringConfig(pattern_type="CUSTOM", interval_days=0, occurrences=3), "at least 1"),
    ],
)
def test_invalid_recurring_config(config, message) -> None:
    with pytest.raises(InvalidRecurringPatternError, match=message):
        validate_recurring_config(config, 52)


def test_pattern_type_is_case_insensitive() -> None:
    assert validate_recurring_config(RecurringConfig(pattern_type="biweekly", occurrences=2), 52) is RecurrenceType.BIWEEKLY


# -----------------------------
# Creation
# -----------------------------
def test_create_recurring_series(db, booking, series, sink) -> None:
    assert series.total_occurrences == 3
    assert series.pattern_type is RecurrenceType.WEEKLY
    assert [r.start_time for r in series.reservations] == [at(2, 10), at(9, 10), at(16, 10)]
    assert all(r.end_time.hour == 12 for r in series.reservations)
    assert all(r.status is ReservationStatus.PENDING for r in series.reservations)
    assert {r.recurring_group_id for r in series.reservations} == {series.recurring_group_id}

    pattern = RecurringPatternRepositoryImpl(db).get(series.recurring_group_id)
    assert pattern.pattern_type is RecurrenceType.WEEKLY
    assert pattern.interval_days == 7
    assert pattern.occurrences == 3

    [submitted] = sink.of_type(NotificationType.RESERVATION_SUBMITTED)
    assert submitted.details["occurrence_count"] == 3
    assert submitted.details["recurring"] is True


def test_later_occurrences_on_closed_days_are_skipped(booking, professor) -> None:
    # Tuesdays: 2026-03-10 is a maintenance day
    series = booking.lifecycle.create_recurring(
        weekly_command(occurrences=3, start_time=at(1, 10), end_time=at(1, 12)),
        professor,
    )

    assert [r.start_time.date() for r in series.reservations] == [date(2026, 3, 3), date(2026, 3, 17)]


def test_first_occurrence_must_be_valid(booking, professor) -> None:
    with pytest.raises(LabClosedError):
        booking.lifecycle.create_recurring(weekly_command(start_time=at(8, 10), end_time=at(8, 12)), professor)


def test_create_recurring_requires_pattern(booking, professor) -> None:
    with pytest.raises(InvalidRecurringPatternError):
        booking.lifecycle.create_recurring(create_command(), professor)


def test_end_date_bounds_series(booking, professor) -> None:
    command = weekly_command(recurring=RecurringConfig(pattern_type="WEEKLY", end_date=date(2026, 3, 11)))

    series = booking.lifecycle.create_recurring(command, professor)

    assert series.total_occurrences == 2


# -----------------------------
# Approve / decline fan-out
# -----------------------------
def test_group_approval_only_touches_pending_members(booking, manager, series) -> None:
    first, second, third = series.reservations
    booking.lifecycle.decline_occurrence(series.recurring_group_id, first.reservation_id, manager, "Exam week")

    assert booking.lifecycle.get_by_id(second.reservation_id).status is ReservationStatus.PENDING
    assert booking.lifecycle.get_by_id(third.reservation_id).status is ReservationStatus.PENDING

    result = booking.lifecycle.approve_group(series.recurring_group_id, manager)

    assert [r.reservation_id for r in result.applied] == [second.reservation_id, third.reservation_id]
    assert [r.reservation_id for r in result.skipped] == [first.reservation_id]
    assert booking.lifecycle.get_by_id(first.reservation_id).status is ReservationStatus.REJECTED
    assert booking.lifecycle.get_by_id(second.reservation_id).status is ReservationStatus.APPROVED
    assert booking.lifecycle.get_by_id(third.reservation_id).status is ReservationStatus.APPROVED


def test_decline_group(booking, admin, series, sink) -> None:
    result = booking.lifecycle.decline_group(series.recurring_group_id, admin, "Lab renovation")

    assert len(result.applied) == 3
    assert all(booking.lifecycle.get_by_id(r.reservation_id).status is ReservationStatus.REJECTED for r in series.reservations)
    assert len(sink.of_type(NotificationType.STATUS_CHANGED)) == 3


def test_approve_single_occurrence(booking, manager, series) -> None:
    occurrence = series.reservations[1]

    booking.lifecycle.approve_occurrence(series.recurring_group_id, occurrence.reservation_id, manager)

    statuses = [booking.lifecycle.get_by_id(r.reservation_id).status for r in series.reservations]
    assert statuses == [ReservationStatus.PENDING, ReservationStatus.APPROVED, ReservationStatus.PENDING]


def test_occurrence_must_belong_to_group(booking, manager, professor, series) -> None:
    single = booking.lifecycle.create(create_command(), professor)

    with pytest.raises(ReservationNotFoundError):
        booking.lifecycle.approve_occurrence(series.recurring_group_id, single.reservation_id, manager)
    with pytest.raises(ReservationNotFoundError):
        booking.lifecycle.decline_occurrence(uuid4(), series.reservations[0].reservation_id, manager)


def test_unknown_group(booking, manager) -> None:
    with pytest.raises(ReservationNotFoundError):
        booking.lifecycle.approve_group(uuid4(), manager)


def test_group_operations_require_lab_scope(booking, physics_manager, professor, series) -> None:
    with pytest.raises(NotAuthorizedError):
        booking.lifecycle.approve_group(series.recurring_group_id, physics_manager)
    with pytest.raises(NotAuthorizedError):
        booking.edits.edit_group_by_manager(series.recurring_group_id, edit_command(), professor)


# -----------------------------
# Group edits
# -----------------------------
def test_manager_group_edit_shifts_every_occurrence(booking, manager, professor, series, sink) -> None:
    result = booking.edits.edit_group_by_manager(
        series.recurring_group_id,
        edit_command(start_time=at(2, 14), end_time=at(2, 16), workstation_ids=[11]),
        manager,
    )

    assert len(result.applied) == 3
    for reservation in series.reservations:
        stored = booking.lifecycle.get_by_id(reservation.reservation_id)
        assert stored.status is ReservationStatus.PENDING_EDIT_APPROVAL
        proposal = booking.edits.get_active_proposal(reservation.reservation_id)
        assert proposal.proposed.start_time == reservation.start_time.replace(hour=14)
        assert proposal.proposed.end_time == reservation.end_time.replace(hour=16)
        assert proposal.proposed.workstation_ids == (11,)
    assert len(sink.of_type(NotificationType.EDIT_PROPOSED_TO_PROFESSOR)) == 1

    approved = booking.edits.approve_group_by_professor(series.recurring_group_id, professor)

    assert len(approved.applied) == 3
    for reservation in series.reservations:
        stored = booking.lifecycle.get_by_id(reservation.reservation_id)
        assert stored.status is ReservationStatus.APPROVED
        assert stored.start_time.hour == 14
        assert stored.workstation_ids == [11]


def test_manager_group_edit_skips_members_with_pending_proposal(booking, manager, series) -> None:
    occurrence = series.reservations[2]
    booking.edits.edit_occurrence_by_manager(occurrence.reservation_id, edit_command(start_time=at(16, 15), end_time=at(16, 16)), manager)

    result = booking.edits.edit_group_by_manager(series.recurring_group_id, edit_command(start_time=at(2, 14), end_time=at(2, 16)), manager)

    assert [r.reservation_id for r in result.skipped] == [occurrence.reservation_id]
    assert booking.edits.get_active_proposal(occurrence.reservation_id).proposed.start_time == at(16, 15)


def test_manager_group_edit_leaves_started_occurrences_alone(db, sink, manager, series) -> None:
    later = open_booking_context(db, sink=sink, clock=lambda: at(3, 0), deferred_notifications=False)

    result = later.edits.edit_group_by_manager(series.recurring_group_id, edit_command(start_time=at(2, 14), end_time=at(2, 16)), manager)

    first = series.reservations[0]
    assert [r.reservation_id for r in result.skipped] == [first.reservation_id]
    assert later.lifecycle.get_by_id(first.reservation_id).status is ReservationStatus.PENDING
    assert later.edits.get_active_proposal(first.reservation_id) is None


def test_invalid_group_edit_aborts_before_any_change(booking, manager, series) -> None:
    # Shifts the first occurrence onto the 2026-03-10 maintenance day
    with pytest.raises(LabClosedError):
        booking.edits.edit_group_by_manager(series.recurring_group_id, edit_command(start_time=at(8, 10), end_time=at(8, 12)), manager)

    for reservation in series.reservations:
        assert booking.edits.get_active_proposal(reservation.reservation_id) is None


def test_occurrence_edit_requires_recurring_reservation(booking, manager, professor, series) -> None:
    single = booking.lifecycle.create(create_command(), professor)

    with pytest.raises(InvalidStateError, match="not part of a recurring group"):
        booking.edits.edit_occurrence_by_manager(single.reservation_id, edit_command(), manager)
    with pytest.raises(ReservationNotFoundError):
        booking.edits.edit_occurrence_by_manager(
            series.reservations[0].reservation_id, edit_command(), manager, recurring_group_id=uuid4()
        )


def test_occurrence_edit_only_touches_that_occurrence(booking, manager, professor, series) -> None:
    target = series.reservations[1]
    booking.edits.edit_occurrence_by_manager(target.reservation_id, edit_command(start_time=at(9, 15), end_time=at(9, 17)), manager)
    booking.edits.reject_by_professor(target.reservation_id, professor, "Keep the morning")

    statuses = [booking.lifecycle.get_by_id(r.reservation_id).status for r in series.reservations]
    assert statuses == [ReservationStatus.PENDING] * 3
    assert booking.lifecycle.get_by_id(target.reservation_id).start_time == at(9, 10)


def test_professor_group_edit_mixes_direct_updates_and_proposals(booking, manager, professor, series, sink) -> None:
    first, second, third = series.reservations
    booking.lifecycle.approve_occurrence(series.recurring_group_id, first.reservation_id, manager)

    result = booking.edits.edit_group_by_professor(
        series.recurring_group_id,
        edit_command(start_time=at(2, 11), end_time=at(2, 13), description="Shifted by an hour"),
        professor,
    )

    assert len(result.applied) == 3
    assert booking.lifecycle.get_by_id(first.reservation_id).status is ReservationStatus.PENDING_EDIT_APPROVAL
    assert booking.lifecycle.get_by_id(first.reservation_id).start_time == at(2, 10)
    for reservation in (second, third):
        stored = booking.lifecycle.get_by_id(reservation.reservation_id)
        assert stored.status is ReservationStatus.PENDING
        assert stored.start_time == reservation.start_time.replace(hour=11)
        assert stored.description == "Shifted by an hour"
    assert len(sink.of_type(NotificationType.RESERVATION_UPDATED)) == 1
    assert len(sink.of_type(NotificationType.EDIT_PROPOSED_TO_MANAGER)) == 1

    resolved = booking.edits.approve_group_by_manager(series.recurring_group_id, manager)

    assert [r.reservation_id for r in resolved.applied] == [first.reservation_id]
    stored = booking.lifecycle.get_by_id(first.reservation_id)
    assert stored.status is ReservationStatus.APPROVED
    assert stored.start_time == at(2, 11)


def test_professor_group_edit_ignores_rejected_members(booking, manager, professor, series) -> None:
    first = series.reservations[0]
    booking.lifecycle.decline_occurrence(series.recurring_group_id, first.reservation_id, manager)

    result = booking.edits.edit_group_by_professor(series.recurring_group_id, edit_command(start_time=at(2, 11), end_time=at(2, 13)), professor)

    assert [r.reservation_id for r in result.skipped] == [first.reservation_id]
    assert booking.lifecycle.get_by_id(first.reservation_id).start_time == at(2, 10)


def test_professor_group_edit_requires_ownership(booking, other_professor, series) -> None:
    with pytest.raises(NotAuthorizedError):
        booking.edits.edit_group_by_professor(series.recurring_group_id, edit_command(), other_professor)


def test_group_reject_restores_every_member(booking, manager, professor, series) -> None:
    booking.edits.edit_group_by_manager(series.recurring_group_id, edit_command(start_time=at(2, 14), end_time=at(2, 16)), manager)

    result = booking.edits.reject_group_by_professor(series.recurring_group_id, professor, "No thanks")

    assert len(result.applied) == 3
    for reservation in series.reservations:
        stored = booking.lifecycle.get_by_id(reservation.reservation_id)
        assert stored.status is ReservationStatus.PENDING
        assert stored.start_time == reservation.start_time


def test_group_resolution_by_the_editing_side_is_refused(booking, manager, series) -> None:
    booking.edits.edit_group_by_manager(series.recurring_group_id, edit_command(start_time=at(2, 14), end_time=at(2, 16)), manager)

    with pytest.raises(InvalidStateError):
        booking.edits.approve_group_by_manager(series.recurring_group_id, manager)


def test_group_resolution_without_proposals(booking, manager, professor, series) -> None:
    with pytest.raises(EditProposalNotFoundError):
        booking.edits.approve_group_by_manager(series.recurring_group_id, manager)
    with pytest.raises(EditProposalNotFoundError):
        booking.edits.reject_group_by_professor(series.recurring_group_id, professor)
