from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from labbooking.core.entities.edit_proposal import ReservationEditProposal
from labbooking.core.entities.reservation import FieldSnapshot as CoreFieldSnapshot
from labbooking.core.entities.reservation import Reservation as CoreReservation
from labbooking.core.entities.reservation import ReservationStatus
from labbooking.core.entities.user import User
from labbooking.core.errors import NotAuthorizedError, ReservationNotFoundError
from labbooking.core.notifications.notification_sink import NotificationSink
from labbooking.core.use_cases.authorization import Authorizer
from labbooking.core.use_cases.commands import CreateReservationCommand, EditReservationCommand, RecurringConfig
from labbooking.core.use_cases.edit_proposals import EditProposalEngine
from labbooking.core.use_cases.notifier import ReservationNotifier
from labbooking.core.use_cases.recurring_group import RecurringGroupCoordinator
from labbooking.core.use_cases.reservation_lifecycle import ReservationLifecycleUseCase
from labbooking.core.use_cases.validate_reservation import Clock, ReservationValidator, utc_now
from labbooking.infrastructure.config import settings
from labbooking.infrastructure.database import transaction
from labbooking.infrastructure.repositories.edit_proposal_repository_impl import EditProposalRepositoryImpl
from labbooking.infrastructure.repositories.lab_repository_impl import LabRepositoryImpl
from labbooking.infrastructure.repositories.recurring_pattern_repository_impl import RecurringPatternRepositoryImpl
from labbooking.infrastructure.repositories.reservation_repository_impl import ReservationRepositoryImpl
from labbooking.infrastructure.repositories.user_repository_impl import UserRepositoryImpl
from labbooking.schemas.models import (
    DecisionReason,
    EditProposal,
    FieldSnapshot,
    Lab,
    RecurringSeries,
    Reservation,
    ReservationCreate,
    ReservationDetail,
    ReservationEdit,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Hands a callable to run after the response, e.g. `BackgroundTasks.add_task`
Scheduler = Callable[[Callable[[], object]], object]


@dataclass(slots=True)
class BookingContext:
    """Use cases wired against one database session."""

    db: Session
    authorizer: Authorizer
    lifecycle: ReservationLifecycleUseCase
    edits: EditProposalEngine
    notifier: ReservationNotifier
    users: UserRepositoryImpl
    schedule: Scheduler | None = None


def open_booking_context(
    db: Session,
    *,
    sink: NotificationSink,
    clock: Clock = utc_now,
    id_factory: Callable[[], UUID] = uuid4,
    deferred_notifications: bool = True,
    schedule: Scheduler | None = None,
) -> BookingContext:
    user_repo = UserRepositoryImpl(db)
    lab_repo = LabRepositoryImpl(db)
    reservation_repo = ReservationRepositoryImpl(db)
    proposal_repo = EditProposalRepositoryImpl(db)
    pattern_repo = RecurringPatternRepositoryImpl(db)

    authorizer = Authorizer(lab_repo=lab_repo, reservation_repo=reservation_repo)
    validator = ReservationValidator(lab_repo=lab_repo, clock=clock, min_duration_minutes=settings.min_reservation_minutes)
    coordinator = RecurringGroupCoordinator(reservation_repo=reservation_repo)
    # Deferred notifications leave only after the transaction committed
    notifier = ReservationNotifier(sink=sink, user_repo=user_repo, lab_repo=lab_repo, deferred=deferred_notifications)

    lifecycle = ReservationLifecycleUseCase(
        reservation_repo=reservation_repo,
        lab_repo=lab_repo,
        pattern_repo=pattern_repo,
        authorizer=authorizer,
        validator=validator,
        coordinator=coordinator,
        notifier=notifier,
        clock=clock,
        id_factory=id_factory,
        max_recurring_occurrences=settings.max_recurring_occurrences,
    )
    edits = EditProposalEngine(
        reservation_repo=reservation_repo,
        proposal_repo=proposal_repo,
        lab_repo=lab_repo,
        authorizer=authorizer,
        validator=validator,
        coordinator=coordinator,
        notifier=notifier,
        clock=clock,
        id_factory=id_factory,
    )
    return BookingContext(
        db=db,
        authorizer=authorizer,
        lifecycle=lifecycle,
        edits=edits,
        notifier=notifier,
        users=user_repo,
        schedule=schedule,
    )


def _run(ctx: BookingContext, operation: Callable[[], T]) -> T:
    """
    Runs `operation` in one transaction and dispatches its notifications once committed.

    With a scheduler the dispatch runs after the response has been sent.
    """
    try:
        with transaction(ctx.db):
            result = operation()
    except Exception:
        ctx.notifier.discard()
        raise
    if ctx.schedule is not None:
        ctx.schedule(ctx.notifier.flush)
    else:
        sent = ctx.notifier.flush()
        logger.debug("Dispatched %d notifications", sent)
    return result


# -----------------------------
# Mapping
# -----------------------------
def _to_reservation(reservation: CoreReservation) -> Reservation:
    return Reservation(
        reservation_id=reservation.reservation_id,
        lab_id=reservation.lab_id,
        user_id=reservation.user_id,
        start_time=reservation.start_time,
        end_time=reservation.end_time,
        description=reservation.description,
        status=reservation.status,
        whole_lab=reservation.whole_lab,
        workstation_ids=list(reservation.workstation_ids),
        recurring_group_id=reservation.recurring_group_id,
        created_at=reservation.created_at,
    )


def _to_snapshot(snapshot: CoreFieldSnapshot) -> FieldSnapshot:
    return FieldSnapshot(
        start_time=snapshot.start_time,
        end_time=snapshot.end_time,
        description=snapshot.description,
        whole_lab=snapshot.whole_lab,
        workstation_ids=list(snapshot.workstation_ids),
    )


def _to_proposal(proposal: ReservationEditProposal) -> EditProposal:
    return EditProposal(
        proposal_id=proposal.proposal_id,
        reservation_id=proposal.reservation_id,
        edited_by=proposal.edited_by,
        original_status=proposal.original_status,
        original=_to_snapshot(proposal.original),
        proposed=_to_snapshot(proposal.proposed),
        resolution=proposal.resolution,
        created_at=proposal.created_at,
        resolved_by=proposal.resolved_by,
        resolved_at=proposal.resolved_at,
        rejection_reason=proposal.rejection_reason,
    )


def _to_create_command(body: ReservationCreate) -> CreateReservationCommand:
    recurring = None
    if body.recurring is not None:
        recurring = RecurringConfig(
            pattern_type=body.recurring.pattern_type,
            interval_days=body.recurring.interval_days,
            end_date=body.recurring.end_date,
            occurrences=body.recurring.occurrences,
        )
    return CreateReservationCommand(
        lab_id=body.lab_id,
        start_time=body.start_time,
        end_time=body.end_time,
        description=body.description,
        whole_lab=body.whole_lab,
        workstation_ids=list(body.workstation_ids),
        recurring=recurring,
    )


def _to_edit_command(body: ReservationEdit) -> EditReservationCommand:
    return EditReservationCommand(
        start_time=body.start_time,
        end_time=body.end_time,
        description=body.description,
        whole_lab=body.whole_lab,
        workstation_ids=list(body.workstation_ids) if body.workstation_ids is not None else None,
    )


def _reason(body: DecisionReason | None) -> str | None:
    return body.reason if body is not None else None


# -----------------------------
# Identity
# -----------------------------
def resolve_user_service(user_id: int, db: Session) -> User | None:
    return UserRepositoryImpl(db).get(user_id)


# -----------------------------
# Reads
# -----------------------------
def _visible_reservation(ctx: BookingContext, reservation_id: UUID, user: User, *, manager_only: bool) -> CoreReservation:
    reservation = ctx.lifecycle.get_by_id(reservation_id)
    if reservation is None:
        raise ReservationNotFoundError(f"Reservation not found: {reservation_id}")

    allowed = (
        ctx.authorizer.can_manage_reservation(user, reservation)
        if manager_only
        else ctx.authorizer.can_view_reservation(user, reservation)
    )
    if not allowed:
        logger.warning("User %s may not view reservation %s", user.email, reservation_id)
        raise NotAuthorizedError("You are not authorized to view this reservation")
    return reservation


def get_reservation_service(reservation_id: UUID, user: User, ctx: BookingContext, *, manager_only: bool = False) -> ReservationDetail:
    reservation = _visible_reservation(ctx, reservation_id, user, manager_only=manager_only)
    active = ctx.edits.get_active_proposal(reservation_id)
    return ReservationDetail(
        **_to_reservation(reservation).model_dump(),
        active_edit_proposal=_to_proposal(active) if active is not None else None,
    )


def list_edit_proposals_service(reservation_id: UUID, user: User, ctx: BookingContext) -> list[EditProposal]:
    _visible_reservation(ctx, reservation_id, user, manager_only=False)
    return [_to_proposal(p) for p in ctx.edits.list_proposals(reservation_id)]


def get_user_reservations_service(user: User, ctx: BookingContext, status: ReservationStatus | None = None) -> list[Reservation]:
    return [_to_reservation(r) for r in ctx.lifecycle.get_by_user(user.user_id, status)]


def _require_any_lab(ctx: BookingContext, user: User) -> None:
    if not ctx.authorizer.is_admin(user) and not ctx.authorizer.get_managed_lab_ids(user):
        logger.warning("User %s is not a lab manager", user.email)
        raise NotAuthorizedError("Only lab managers and admins can access this resource")


def get_pending_reservations_service(user: User, ctx: BookingContext) -> list[Reservation]:
    _require_any_lab(ctx, user)
    return [_to_reservation(r) for r in ctx.lifecycle.get_pending_for_manager(user)]


def get_managed_labs_service(user: User, ctx: BookingContext) -> list[Lab]:
    _require_any_lab(ctx, user)
    return [
        Lab(
            lab_id=lab.lab_id,
            name=lab.name,
            default_open_time=lab.default_open_time,
            default_close_time=lab.default_close_time,
        )
        for lab in ctx.authorizer.get_managed_labs(user)
    ]


# -----------------------------
# Creation and decisions
# -----------------------------
def create_reservation_service(body: ReservationCreate, user: User, ctx: BookingContext) -> Reservation | RecurringSeries:
    command = _to_create_command(body)
    if command.recurring is None:
        return _to_reservation(_run(ctx, lambda: ctx.lifecycle.create(command, user)))

    series = _run(ctx, lambda: ctx.lifecycle.create_recurring(command, user))
    return RecurringSeries(
        recurring_group_id=series.recurring_group_id,
        pattern_type=series.pattern_type,
        total_occurrences=series.total_occurrences,
        reservations=[_to_reservation(r) for r in series.reservations],
    )


def approve_reservation_service(reservation_id: UUID, body: DecisionReason | None, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.lifecycle.approve(reservation_id, user, _reason(body)))


def decline_reservation_service(reservation_id: UUID, body: DecisionReason | None, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.lifecycle.decline(reservation_id, user, _reason(body)))


def approve_recurring_group_service(group_id: UUID, body: DecisionReason | None, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.lifecycle.approve_group(group_id, user, _reason(body)))


def decline_recurring_group_service(group_id: UUID, body: DecisionReason | None, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.lifecycle.decline_group(group_id, user, _reason(body)))


def approve_occurrence_service(group_id: UUID, occurrence_id: UUID, body: DecisionReason | None, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.lifecycle.approve_occurrence(group_id, occurrence_id, user, _reason(body)))


def decline_occurrence_service(group_id: UUID, occurrence_id: UUID, body: DecisionReason | None, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.lifecycle.decline_occurrence(group_id, occurrence_id, user, _reason(body)))


# -----------------------------
# Edits by lab managers
# -----------------------------
def edit_by_manager_service(reservation_id: UUID, body: ReservationEdit, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.edit_by_manager(reservation_id, _to_edit_command(body), user))


def edit_occurrence_by_manager_service(group_id: UUID, occurrence_id: UUID, body: ReservationEdit, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.edit_occurrence_by_manager(occurrence_id, _to_edit_command(body), user, group_id))


def edit_group_by_manager_service(group_id: UUID, body: ReservationEdit, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.edit_group_by_manager(group_id, _to_edit_command(body), user))


def approve_edit_by_manager_service(reservation_id: UUID, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.approve_by_manager(reservation_id, user))


def reject_edit_by_manager_service(reservation_id: UUID, body: DecisionReason | None, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.reject_by_manager(reservation_id, user, _reason(body)))


def approve_group_edit_by_manager_service(group_id: UUID, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.approve_group_by_manager(group_id, user))


def reject_group_edit_by_manager_service(group_id: UUID, body: DecisionReason | None, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.reject_group_by_manager(group_id, user, _reason(body)))


# -----------------------------
# Edits by professors
# -----------------------------
def edit_by_professor_service(reservation_id: UUID, body: ReservationEdit, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.edit_by_professor(reservation_id, _to_edit_command(body), user))


def edit_group_by_professor_service(group_id: UUID, body: ReservationEdit, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.edit_group_by_professor(group_id, _to_edit_command(body), user))


def approve_edit_by_professor_service(reservation_id: UUID, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.approve_by_professor(reservation_id, user))


def reject_edit_by_professor_service(reservation_id: UUID, body: DecisionReason | None, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.reject_by_professor(reservation_id, user, _reason(body)))


def approve_group_edit_by_professor_service(group_id: UUID, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.approve_group_by_professor(group_id, user))


def reject_group_edit_by_professor_service(group_id: UUID, body: DecisionReason | None, user: User, ctx: BookingContext) -> None:
    _run(ctx, lambda: ctx.edits.reject_group_by_professor(group_id, user, _reason(body)))
