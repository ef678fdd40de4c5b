from __future__ import annotations

import logging

from labbooking.core.entities.edit_proposal import ReservationEditProposal
from labbooking.core.entities.lab import Lab
from labbooking.core.entities.reservation import Reservation, ReservationStatus
from labbooking.core.entities.user import User
from labbooking.core.notifications.notification_sink import Notification, NotificationSink, NotificationType
from labbooking.core.repositories.lab_repository import LabRepository
from labbooking.core.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class ReservationNotifier:
    """
    Builds workflow notifications and hands them to a sink.

    With `deferred=True` notifications are queued until `flush()` so they go out only after the
    surrounding transaction committed; `discard()` drops them on rollback. Sink failures are logged
    and never propagated.
    """

    def __init__(
        self,
        *,
        sink: NotificationSink,
        user_repo: UserRepository,
        lab_repo: LabRepository,
        deferred: bool = False,
    ) -> None:
        self._sink = sink
        self._user_repo = user_repo
        self._lab_repo = lab_repo
        self._deferred = deferred
        self._queue: list[Notification] = []

    # -----------------------------
    # Dispatch
    # -----------------------------
    def flush(self) -> int:
        queued, self._queue = self._queue, []
        for notification in queued:
            self._deliver(notification)
        return len(queued)

    def discard(self) -> None:
        self._queue.clear()

    def _emit(self, notification: Notification) -> None:
        if self._deferred:
            self._queue.append(notification)
        else:
            self._deliver(notification)

    def _deliver(self, notification: Notification) -> None:
        try:
            self._sink.send(notification)
        except Exception as e:
            logger.error(
                "Failed to send %s notification to %s: %s",
                notification.type.value,
                notification.recipient_email,
                e,
            )

    # -----------------------------
    # Lookups
    # -----------------------------
    def _context(self, reservation: Reservation) -> tuple[User | None, Lab | None]:
        return self._user_repo.get(reservation.user_id), self._lab_repo.get(reservation.lab_id)

    def _managers_of(self, lab_id: int) -> list[User]:
        managers = []
        for assignment in self._lab_repo.list_manager_assignments(lab_id=lab_id):
            user = self._user_repo.get(assignment.user_id)
            if user is not None:
                managers.append(user)
        return managers

    def _name_of(self, user_id: int | None, fallback: str) -> str:
        user = self._user_repo.get(user_id) if user_id is not None else None
        return user.full_name if user is not None else fallback

    # -----------------------------
    # Events
    # -----------------------------
    def reservation_submitted(self, reservation: Reservation, *, occurrence_count: int = 1) -> None:
        owner, lab = self._context(reservation)
        if owner is None or lab is None:
            return
        details = {
            "start_time": reservation.start_time.isoformat(),
            "end_time": reservation.end_time.isoformat(),
            "recurring": reservation.is_recurring,
            "occurrence_count": occurrence_count,
        }
        self._emit(Notification(
            type=NotificationType.RESERVATION_SUBMITTED,
            recipient_email=owner.email,
            recipient_name=owner.full_name,
            lab_name=lab.name,
            reservation_id=reservation.reservation_id,
            details=details,
        ))
        for manager in self._managers_of(lab.lab_id):
            self._emit(Notification(
                type=NotificationType.NEW_RESERVATION_REQUEST,
                recipient_email=manager.email,
                recipient_name=manager.full_name,
                lab_name=lab.name,
                reservation_id=reservation.reservation_id,
                actor_name=owner.full_name,
                details=details,
            ))

    def status_changed(self, reservation: Reservation, new_status: ReservationStatus, reason: str | None) -> None:
        owner, lab = self._context(reservation)
        if owner is None or lab is None:
            return
        self._emit(Notification(
            type=NotificationType.STATUS_CHANGED,
            recipient_email=owner.email,
            recipient_name=owner.full_name,
            lab_name=lab.name,
            reservation_id=reservation.reservation_id,
            reason=reason,
            details={
                "status": new_status.value,
                "start_time": reservation.start_time.isoformat(),
                "end_time": reservation.end_time.isoformat(),
            },
        ))

    def edit_proposed_to_professor(self, reservation: Reservation, proposal: ReservationEditProposal) -> None:
        owner, lab = self._context(reservation)
        if owner is None or lab is None:
            return
        self._emit(Notification(
            type=NotificationType.EDIT_PROPOSED_TO_PROFESSOR,
            recipient_email=owner.email,
            recipient_name=owner.full_name,
            lab_name=lab.name,
            reservation_id=reservation.reservation_id,
            actor_name=self._name_of(proposal.edited_by, "Lab Manager"),
        ))

    def edit_proposed_to_managers(self, reservation: Reservation) -> None:
        self._to_managers(reservation, NotificationType.EDIT_PROPOSED_TO_MANAGER)

    def reservation_updated(self, reservation: Reservation) -> None:
        self._to_managers(reservation, NotificationType.RESERVATION_UPDATED)

    def _to_managers(self, reservation: Reservation, notification_type: NotificationType) -> None:
        owner, lab = self._context(reservation)
        if owner is None or lab is None:
            return
        for manager in self._managers_of(lab.lab_id):
            self._emit(Notification(
                type=notification_type,
                recipient_email=manager.email,
                recipient_name=manager.full_name,
                lab_name=lab.name,
                reservation_id=reservation.reservation_id,
                actor_name=owner.full_name,
            ))

    def edit_resolved_by_manager(
        self,
        reservation: Reservation,
        proposal: ReservationEditProposal,
        *,
        approved: bool,
        reason: str | None = None,
    ) -> None:
        owner, lab = self._context(reservation)
        if owner is None or lab is None:
            return
        self._emit(Notification(
            type=NotificationType.EDIT_APPROVED_BY_MANAGER if approved else NotificationType.EDIT_REJECTED_BY_MANAGER,
            recipient_email=owner.email,
            recipient_name=owner.full_name,
            lab_name=lab.name,
            reservation_id=reservation.reservation_id,
            actor_name=self._name_of(proposal.resolved_by, "Lab Manager"),
            reason=reason,
        ))

    def edit_resolved_by_professor(
        self,
        reservation: Reservation,
        proposal: ReservationEditProposal,
        *,
        approved: bool,
        reason: str | None = None,
    ) -> None:
        owner, lab = self._context(reservation)
        editor = self._user_repo.get(proposal.edited_by)
        if owner is None or lab is None or editor is None:
            return
        self._emit(Notification(
            type=NotificationType.EDIT_APPROVED_BY_PROFESSOR if approved else NotificationType.EDIT_REJECTED_BY_PROFESSOR,
            recipient_email=editor.email,
            recipient_name=editor.full_name,
            lab_name=lab.name,
            reservation_id=reservation.reservation_id,
            actor_name=owner.full_name,
            reason=reason,
        ))
