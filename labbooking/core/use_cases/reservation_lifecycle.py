from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from uuid import UUID, uuid4

from labbooking.core.entities.lab import Lab
from labbooking.core.entities.recurring_pattern import RecurrenceType, RecurringPattern
from labbooking.core.entities.reservation import Reservation, ReservationStatus
from labbooking.core.entities.user import User
from labbooking.core.errors import (
    InvalidReservationTimeError,
    InvalidStateError,
    LabNotFoundError,
    NoValidOccurrencesError,
    NotAuthorizedError,
    ReservationNotFoundError,
    ValidationFailedError,
)
from labbooking.core.repositories.lab_repository import LabRepository
from labbooking.core.repositories.recurring_pattern_repository import RecurringPatternRepository
from labbooking.core.repositories.reservation_repository import ReservationRepository
from labbooking.core.use_cases.authorization import Authorizer
from labbooking.core.use_cases.commands import CreateReservationCommand
from labbooking.core.use_cases.notifier import ReservationNotifier
from labbooking.core.use_cases.recurring_group import (
    FanOutResult,
    RecurringGroupCoordinator,
    compute_occurrence_dates,
    validate_recurring_config,
)
from labbooking.core.use_cases.validate_reservation import Clock, ReservationValidator, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RecurringSeries:
    recurring_group_id: UUID
    pattern_type: RecurrenceType
    reservations: list[Reservation]

    @property
    def total_occurrences(self) -> int:
        return len(self.reservations)


class ReservationLifecycleUseCase:
    """
    Creates reservations (single and recurring) and moves them from PENDING to APPROVED or REJECTED.
    """

    def __init__(
        self,
        *,
        reservation_repo: ReservationRepository,
        lab_repo: LabRepository,
        pattern_repo: RecurringPatternRepository,
        authorizer: Authorizer,
        validator: ReservationValidator,
        coordinator: RecurringGroupCoordinator,
        notifier: ReservationNotifier,
        clock: Clock = utc_now,
        id_factory: Callable[[], UUID] = uuid4,
        max_recurring_occurrences: int = 52,
    ) -> None:
        self._reservation_repo = reservation_repo
        self._lab_repo = lab_repo
        self._pattern_repo = pattern_repo
        self._authorizer = authorizer
        self._validator = validator
        self._coordinator = coordinator
        self._notifier = notifier
        self._clock = clock
        self._id_factory = id_factory
        self._max_recurring_occurrences = max_recurring_occurrences

    # -----------------------------
    # Reads
    # -----------------------------
    def get_by_id(self, reservation_id: UUID) -> Reservation | None:
        reservation = self._reservation_repo.get(reservation_id)
        logger.debug("Reservation %s %s", reservation_id, "found" if reservation else "not found")
        return reservation

    def get_by_user(self, user_id: int, status: ReservationStatus | None = None) -> list[Reservation]:
        reservations = self._reservation_repo.list_by_user(user_id, status)
        logger.debug("Found %d reservations for user %s", len(reservations), user_id)
        return reservations

    def get_pending_for_manager(self, user: User) -> list[Reservation]:
        reservations = self._authorizer.get_pending_reservations_for_user(user)
        logger.debug("Found %d pending reservations for manager %s", len(reservations), user.email)
        return reservations

    # -----------------------------
    # Creation
    # -----------------------------
    def _get_lab(self, lab_id: int) -> Lab:
        lab = self._lab_repo.get(lab_id)
        if lab is None:
            logger.warning("Lab not found: %s", lab_id)
            raise LabNotFoundError(f"Lab not found: {lab_id}")
        return lab

    def _build(
        self,
        lab: Lab,
        command: CreateReservationCommand,
        user: User,
        start_time: datetime,
        end_time: datetime,
        recurring_group_id: UUID | None,
    ) -> Reservation:
        workstations = self._validator.validate(lab, start_time, end_time, command.whole_lab, command.workstation_ids)
        reservation = Reservation(
            reservation_id=self._id_factory(),
            lab_id=lab.lab_id,
            user_id=user.user_id,
            start_time=start_time,
            end_time=end_time,
            description=command.description,
            status=ReservationStatus.PENDING,
            whole_lab=bool(command.whole_lab),
            workstation_ids=[w.workstation_id for w in workstations],
            recurring_group_id=recurring_group_id,
            created_at=self._clock(),
        )
        self._reservation_repo.upsert(reservation)
        return reservation

    def create(self, command: CreateReservationCommand, user: User) -> Reservation:
        logger.info("Creating reservation for user %s in lab %s", user.email, command.lab_id)
        lab = self._get_lab(command.lab_id)

        reservation = self._build(lab, command, user, command.start_time, command.end_time, None)
        logger.info("Created reservation %s for user %s in lab %s", reservation.reservation_id, user.email, lab.name)

        self._notifier.reservation_submitted(reservation)
        return reservation

    def create_recurring(self, command: CreateReservationCommand, user: User) -> RecurringSeries:
        logger.info("Creating recurring reservation for user %s in lab %s", user.email, command.lab_id)
        config = command.recurring
        pattern_type = validate_recurring_config(config, self._max_recurring_occurrences)
        lab = self._get_lab(command.lab_id)

        # The first occurrence must be valid as requested; later ones may be skipped
        self._validator.validate(lab, command.start_time, command.end_time, command.whole_lab, command.workstation_ids)

        dates = compute_occurrence_dates(
            command.start_time.date(),
            pattern_type,
            interval_days=config.interval_days,
            end_date=config.end_date,
            occurrences=config.occurrences,
            max_occurrences=self._max_recurring_occurrences,
        )
        if not dates:
            raise NoValidOccurrencesError()

        recurring_group_id = self._id_factory()
        span_days = command.end_time.date() - command.start_time.date()
        reservations: list[Reservation] = []
        for day in dates:
            start_time = datetime.combine(day, command.start_time.timetz())
            end_time = datetime.combine(day + span_days, command.end_time.timetz())
            try:
                reservations.append(self._build(lab, command, user, start_time, end_time, recurring_group_id))
            except (ValidationFailedError, InvalidReservationTimeError) as e:
                logger.warning("Skipping occurrence on %s: %s", day, e.message)

        if not reservations:
            raise NoValidOccurrencesError()

        self._pattern_repo.add(RecurringPattern(
            recurring_group_id=recurring_group_id,
            pattern_type=pattern_type,
            interval_days=pattern_type.interval_days(config.interval_days),
            end_date=config.end_date,
            occurrences=config.occurrences,
        ))
        logger.info("Created recurring reservation group %s with %d occurrences", recurring_group_id, len(reservations))

        self._notifier.reservation_submitted(reservations[0], occurrence_count=len(reservations))
        return RecurringSeries(recurring_group_id=recurring_group_id, pattern_type=pattern_type, reservations=reservations)

    # -----------------------------
    # Approve / decline
    # -----------------------------
    def _get_managed(self, reservation_id: UUID, actor: User) -> Reservation:
        reservation = self._reservation_repo.get(reservation_id)
        if reservation is None:
            logger.warning("Reservation not found: %s", reservation_id)
            raise ReservationNotFoundError(f"Reservation not found: {reservation_id}")
        if not self._authorizer.can_manage_reservation(actor, reservation):
            logger.warning("User %s is not authorized to manage reservation %s", actor.email, reservation_id)
            raise NotAuthorizedError("You are not authorized to manage this reservation")
        return reservation

    def _transition(self, reservation: Reservation, new_status: ReservationStatus, reason: str | None) -> None:
        if new_status is ReservationStatus.APPROVED:
            reservation.mark_approved()
        else:
            reservation.mark_rejected()
        self._reservation_repo.upsert(reservation)
        self._notifier.status_changed(reservation, new_status, reason)

    def _resolve_one(self, reservation_id: UUID, actor: User, reason: str | None, new_status: ReservationStatus) -> Reservation:
        verb = "approve" if new_status is ReservationStatus.APPROVED else "decline"
        logger.info("Manager %s attempting to %s reservation %s", actor.email, verb, reservation_id)

        reservation = self._get_managed(reservation_id, actor)
        if reservation.status is not ReservationStatus.PENDING:
            logger.warning("Cannot %s reservation %s with status %s", verb, reservation_id, reservation.status.value)
            raise InvalidStateError(f"Only PENDING reservations can be {verb}d")

        self._transition(reservation, new_status, reason)
        logger.info("Reservation %s %s by manager %s", reservation_id, new_status.value, actor.email)
        return reservation

    def approve(self, reservation_id: UUID, actor: User, reason: str | None = None) -> Reservation:
        return self._resolve_one(reservation_id, actor, reason, ReservationStatus.APPROVED)

    def decline(self, reservation_id: UUID, actor: User, reason: str | None = None) -> Reservation:
        return self._resolve_one(reservation_id, actor, reason, ReservationStatus.REJECTED)

    def _check_occurrence(self, recurring_group_id: UUID, occurrence_id: UUID) -> None:
        reservation = self._reservation_repo.get(occurrence_id)
        if reservation is None or reservation.recurring_group_id != recurring_group_id:
            logger.warning("Reservation %s is not an occurrence of recurring group %s", occurrence_id, recurring_group_id)
            raise ReservationNotFoundError(f"Occurrence {occurrence_id} not found in recurring group {recurring_group_id}")

    def approve_occurrence(self, recurring_group_id: UUID, occurrence_id: UUID, actor: User, reason: str | None = None) -> Reservation:
        self._check_occurrence(recurring_group_id, occurrence_id)
        return self.approve(occurrence_id, actor, reason)

    def decline_occurrence(self, recurring_group_id: UUID, occurrence_id: UUID, actor: User, reason: str | None = None) -> Reservation:
        self._check_occurrence(recurring_group_id, occurrence_id)
        return self.decline(occurrence_id, actor, reason)

    def _resolve_group(self, recurring_group_id: UUID, actor: User, reason: str | None, new_status: ReservationStatus) -> FanOutResult:
        logger.info("Manager %s attempting to set recurring group %s to %s", actor.email, recurring_group_id, new_status.value)
        members = self._coordinator.load_members(recurring_group_id)

        if not self._authorizer.can_manage_reservation(actor, self._coordinator.representative(members)):
            logger.warning("User %s is not authorized to manage recurring group %s", actor.email, recurring_group_id)
            raise NotAuthorizedError("You are not authorized to manage this recurring group")

        def _apply(member: Reservation) -> bool:
            if member.status is not ReservationStatus.PENDING:
                return False
            self._transition(member, new_status, reason)
            return True

        result = self._coordinator.fan_out(members, _apply)
        logger.info(
            "Set %d reservations in recurring group %s to %s (%d left untouched) by manager %s",
            len(result.applied), recurring_group_id, new_status.value, len(result.skipped), actor.email,
        )
        return result

    def approve_group(self, recurring_group_id: UUID, actor: User, reason: str | None = None) -> FanOutResult:
        return self._resolve_group(recurring_group_id, actor, reason, ReservationStatus.APPROVED)

    def decline_group(self, recurring_group_id: UUID, actor: User, reason: str | None = None) -> FanOutResult:
        return self._resolve_group(recurring_group_id, actor, reason, ReservationStatus.REJECTED)
