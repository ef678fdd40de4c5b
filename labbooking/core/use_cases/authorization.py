from __future__ import annotations

import logging

from labbooking.core.entities.lab import Lab
from labbooking.core.entities.reservation import Reservation, ReservationStatus
from labbooking.core.entities.user import Role, User
from labbooking.core.repositories.lab_repository import LabRepository
from labbooking.core.repositories.reservation_repository import ReservationRepository

logger = logging.getLogger(__name__)


class Authorizer:
    """
    Single source of truth for who may act on which lab or reservation.

    Admins have full access to all labs, lab managers only to the labs they are assigned to.
    Predicates never raise: missing users or targets simply yield False.
    """

    def __init__(self, *, lab_repo: LabRepository, reservation_repo: ReservationRepository) -> None:
        self._lab_repo = lab_repo
        self._reservation_repo = reservation_repo

    def is_admin(self, user: User | None) -> bool:
        if user is None or user.role is None:
            return False
        return user.role is Role.ADMIN

    def is_lab_manager_for_lab(self, user: User | None, lab_id: int | None) -> bool:
        if user is None or lab_id is None:
            return False
        if self.is_admin(user):
            return True
        is_manager = self._lab_repo.is_manager_of(user.user_id, lab_id)
        logger.debug("Lab manager check for user %s and lab %s: %s", user.email, lab_id, is_manager)
        return is_manager

    def can_manage_reservation(self, user: User | None, reservation: Reservation | None) -> bool:
        if reservation is None:
            return False
        return self.is_lab_manager_for_lab(user, reservation.lab_id)

    def is_reservation_owner(self, user: User | None, reservation: Reservation | None) -> bool:
        if user is None or reservation is None:
            return False
        return reservation.user_id == user.user_id

    def get_managed_labs(self, user: User | None) -> list[Lab]:
        if user is None:
            return []
        if self.is_admin(user):
            return self._lab_repo.list_all()

        labs = []
        for assignment in self._lab_repo.list_manager_assignments(user_id=user.user_id):
            lab = self._lab_repo.get(assignment.lab_id)
            if lab is not None:
                labs.append(lab)
        logger.debug("User %s manages %d labs", user.email, len(labs))
        return labs

    def get_managed_lab_ids(self, user: User | None) -> list[int]:
        return [lab.lab_id for lab in self.get_managed_labs(user)]

    def get_pending_reservations_for_user(self, user: User | None) -> list[Reservation]:
        if user is None:
            return []
        if self.is_admin(user):
            return self._reservation_repo.list_by_status(ReservationStatus.PENDING)
        return self._reservation_repo.list_by_status(ReservationStatus.PENDING, lab_ids=self.get_managed_lab_ids(user))

    def can_view_reservation(self, user: User | None, reservation: Reservation | None) -> bool:
        return self.is_reservation_owner(user, reservation) or self.can_manage_reservation(user, reservation)
