from __future__ import annotations

from functools import lru_cache
from typing import Iterator
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Response
from sqlalchemy.orm import Session

from labbooking.core.entities.reservation import ReservationStatus
from labbooking.core.entities.user import User
from labbooking.core.notifications.notification_sink import NotificationSink
from labbooking.core.use_cases.validate_reservation import Clock, utc_now
from labbooking.infrastructure.config import settings
from labbooking.infrastructure.database import SessionLocal
from labbooking.infrastructure.notifications.logging_sink import LoggingNotificationSink
from labbooking.infrastructure.notifications.smtp_sink import SmtpNotificationSink
from labbooking.schemas.models import (
    DecisionReason,
    EditProposal,
    Error,
    Lab,
    RecurringSeries,
    Reservation,
    ReservationCreate,
    ReservationDetail,
    ReservationEdit,
)
from labbooking.services import booking_service as svc
from labbooking.services.booking_service import BookingContext, open_booking_context

# Body of every BookingError response, see main._booking_error_handler
ERROR_RESPONSES = {status: {"model": Error} for status in (400, 403, 404, 409)}

router = APIRouter(prefix="/api/v1/reservations", tags=["reservations"], responses=ERROR_RESPONSES)
manager_router = APIRouter(prefix="/api/v1/manager/reservations", tags=["manager"], responses=ERROR_RESPONSES)


# -----------------------------
# Dependencies
# -----------------------------
def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_notification_sink() -> NotificationSink:
    if settings.smtp_enabled:
        return SmtpNotificationSink(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            use_tls=settings.smtp_use_tls,
        )
    return LoggingNotificationSink()


def get_clock() -> Clock:
    return utc_now


def get_booking_context(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    clock: Clock = Depends(get_clock),
) -> BookingContext:
    """Notifications are sent as background tasks, after the response."""
    return open_booking_context(db, sink=sink, clock=clock, schedule=background_tasks.add_task)


def get_current_user(
    x_user_id: int | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """Resolves the acting user from the `X-User-Id` header."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    user = svc.resolve_user_service(x_user_id, db)
    if user is None:
        raise HTTPException(status_code=401, detail=f"Unknown user: {x_user_id}")
    return user


# -----------------------------
# Professor routes
# -----------------------------
@router.post("", status_code=201, response_model=Reservation | RecurringSeries)
def post_reservation(
    body: ReservationCreate,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Reservation | RecurringSeries:
    """
    Create a reservation, or a recurring series when `recurring` is given

    Returns:
      - 201 with the reservation (or series) in PENDING
      - 400 on malformed times or recurrence pattern
      - 404 if the lab or a workstation does not exist
      - 422 on operating-hours, closed-day or workstation rule violations
    """
    return svc.create_reservation_service(body, user, ctx)


@router.get("/me", response_model=list[Reservation])
def get_my_reservations(
    status: ReservationStatus | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> list[Reservation]:
    return svc.get_user_reservations_service(user, ctx, status)


@router.post("/recurring/{group_id}/edit", status_code=204, response_model=None)
def post_recurring_group_edit(
    group_id: UUID,
    body: ReservationEdit,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.edit_group_by_professor_service(group_id, body, user, ctx)
    return Response(status_code=204)


@router.post("/recurring/{group_id}/edit/approve", status_code=204, response_model=None)
def post_recurring_group_edit_approve(
    group_id: UUID,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.approve_group_edit_by_professor_service(group_id, user, ctx)
    return Response(status_code=204)


@router.post("/recurring/{group_id}/edit/reject", status_code=204, response_model=None)
def post_recurring_group_edit_reject(
    group_id: UUID,
    body: DecisionReason | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.reject_group_edit_by_professor_service(group_id, body, user, ctx)
    return Response(status_code=204)


@router.get("/{reservation_id}", response_model=ReservationDetail)
def get_reservation(
    reservation_id: UUID,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> ReservationDetail:
    return svc.get_reservation_service(reservation_id, user, ctx)


@router.get("/{reservation_id}/edit-proposals", response_model=list[EditProposal])
def get_reservation_edit_proposals(
    reservation_id: UUID,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> list[EditProposal]:
    return svc.list_edit_proposals_service(reservation_id, user, ctx)


@router.post("/{reservation_id}/edit", status_code=204, response_model=None)
def post_reservation_edit(
    reservation_id: UUID,
    body: ReservationEdit,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    """
    Edit one of your own reservations

    PENDING reservations are updated in place, APPROVED ones get an edit proposal for the lab managers.
    """
    svc.edit_by_professor_service(reservation_id, body, user, ctx)
    return Response(status_code=204)


@router.post("/{reservation_id}/edit/approve", status_code=204, response_model=None)
def post_reservation_edit_approve(
    reservation_id: UUID,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.approve_edit_by_professor_service(reservation_id, user, ctx)
    return Response(status_code=204)


@router.post("/{reservation_id}/edit/reject", status_code=204, response_model=None)
def post_reservation_edit_reject(
    reservation_id: UUID,
    body: DecisionReason | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.reject_edit_by_professor_service(reservation_id, body, user, ctx)
    return Response(status_code=204)


# -----------------------------
# Manager routes
# -----------------------------
@manager_router.get("/pending", response_model=list[Reservation])
def get_pending_reservations(
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> list[Reservation]:
    return svc.get_pending_reservations_service(user, ctx)


@manager_router.get("/labs", response_model=list[Lab])
def get_managed_labs(
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> list[Lab]:
    return svc.get_managed_labs_service(user, ctx)


@manager_router.post("/recurring/{group_id}/approve", status_code=204, response_model=None)
def post_recurring_group_approve(
    group_id: UUID,
    body: DecisionReason | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    """Approve every still-PENDING occurrence of a recurring group"""
    svc.approve_recurring_group_service(group_id, body, user, ctx)
    return Response(status_code=204)


@manager_router.post("/recurring/{group_id}/decline", status_code=204, response_model=None)
def post_recurring_group_decline(
    group_id: UUID,
    body: DecisionReason | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.decline_recurring_group_service(group_id, body, user, ctx)
    return Response(status_code=204)


@manager_router.post("/recurring/{group_id}/edit", status_code=204, response_model=None)
def post_manager_recurring_group_edit(
    group_id: UUID,
    body: ReservationEdit,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    """
    Propose an edit for every upcoming occurrence of a recurring group

    The requested times are taken relative to the group's first occurrence and shifted onto each member.
    """
    svc.edit_group_by_manager_service(group_id, body, user, ctx)
    return Response(status_code=204)


@manager_router.post("/recurring/{group_id}/edit/approve", status_code=204, response_model=None)
def post_manager_recurring_group_edit_approve(
    group_id: UUID,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.approve_group_edit_by_manager_service(group_id, user, ctx)
    return Response(status_code=204)


@manager_router.post("/recurring/{group_id}/edit/reject", status_code=204, response_model=None)
def post_manager_recurring_group_edit_reject(
    group_id: UUID,
    body: DecisionReason | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.reject_group_edit_by_manager_service(group_id, body, user, ctx)
    return Response(status_code=204)


@manager_router.post("/recurring/{group_id}/occurrences/{occurrence_id}/approve", status_code=204, response_model=None)
def post_occurrence_approve(
    group_id: UUID,
    occurrence_id: UUID,
    body: DecisionReason | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.approve_occurrence_service(group_id, occurrence_id, body, user, ctx)
    return Response(status_code=204)


@manager_router.post("/recurring/{group_id}/occurrences/{occurrence_id}/decline", status_code=204, response_model=None)
def post_occurrence_decline(
    group_id: UUID,
    occurrence_id: UUID,
    body: DecisionReason | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.decline_occurrence_service(group_id, occurrence_id, body, user, ctx)
    return Response(status_code=204)


@manager_router.post("/recurring/{group_id}/occurrences/{occurrence_id}/edit", status_code=204, response_model=None)
def post_occurrence_edit(
    group_id: UUID,
    occurrence_id: UUID,
    body: ReservationEdit,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.edit_occurrence_by_manager_service(group_id, occurrence_id, body, user, ctx)
    return Response(status_code=204)


@manager_router.get("/{reservation_id}", response_model=ReservationDetail)
def get_managed_reservation(
    reservation_id: UUID,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> ReservationDetail:
    return svc.get_reservation_service(reservation_id, user, ctx, manager_only=True)


@manager_router.post("/{reservation_id}/approve", status_code=204, response_model=None)
def post_reservation_approve(
    reservation_id: UUID,
    body: DecisionReason | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    """
    Approve a PENDING reservation

    Returns:
      - 204 on success
      - 403 if the reservation's lab is not managed by the caller
      - 404 if the reservation does not exist
      - 409 if the reservation is not PENDING
    """
    svc.approve_reservation_service(reservation_id, body, user, ctx)
    return Response(status_code=204)


@manager_router.post("/{reservation_id}/decline", status_code=204, response_model=None)
def post_reservation_decline(
    reservation_id: UUID,
    body: DecisionReason | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.decline_reservation_service(reservation_id, body, user, ctx)
    return Response(status_code=204)


@manager_router.post("/{reservation_id}/edit", status_code=204, response_model=None)
def post_manager_reservation_edit(
    reservation_id: UUID,
    body: ReservationEdit,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    """Propose an edit that the reservation owner has to accept"""
    svc.edit_by_manager_service(reservation_id, body, user, ctx)
    return Response(status_code=204)


@manager_router.post("/{reservation_id}/edit/approve", status_code=204, response_model=None)
def post_manager_reservation_edit_approve(
    reservation_id: UUID,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.approve_edit_by_manager_service(reservation_id, user, ctx)
    return Response(status_code=204)


@manager_router.post("/{reservation_id}/edit/reject", status_code=204, response_model=None)
def post_manager_reservation_edit_reject(
    reservation_id: UUID,
    body: DecisionReason | None = None,
    user: User = Depends(get_current_user),
    ctx: BookingContext = Depends(get_booking_context),
) -> Response:
    svc.reject_edit_by_manager_service(reservation_id, body, user, ctx)
    return Response(status_code=204)
