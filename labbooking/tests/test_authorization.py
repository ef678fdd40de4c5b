from __future__ import annotations

from uuid import uuid4

from labbooking.core.entities.reservation import Reservation, ReservationStatus
from labbooking.core.entities.user import Role, User
from labbooking.tests.factories import CHEM_LAB, PHYSICS_LAB, PROFESSOR_ID, at, create_command


def _reservation(lab_id: int = CHEM_LAB, user_id: int = PROFESSOR_ID) -> Reservation:
    return Reservation(reservation_id=uuid4(), lab_id=lab_id, user_id=user_id, start_time=at(1, 10), end_time=at(1, 12))


def test_admin_manages_every_lab(booking, admin) -> None:
    auth = booking.authorizer

    assert auth.is_admin(admin)
    assert auth.is_lab_manager_for_lab(admin, CHEM_LAB)
    assert auth.is_lab_manager_for_lab(admin, PHYSICS_LAB)
    assert [lab.lab_id for lab in auth.get_managed_labs(admin)] == [CHEM_LAB, PHYSICS_LAB]


def test_lab_manager_is_scoped_to_assigned_labs(booking, manager) -> None:
    auth = booking.authorizer

    assert not auth.is_admin(manager)
    assert auth.is_lab_manager_for_lab(manager, CHEM_LAB)
    assert not auth.is_lab_manager_for_lab(manager, PHYSICS_LAB)
    assert auth.can_manage_reservation(manager, _reservation(CHEM_LAB))
    assert not auth.can_manage_reservation(manager, _reservation(PHYSICS_LAB))
    assert auth.get_managed_lab_ids(manager) == [CHEM_LAB]


def test_professor_owns_but_does_not_manage(booking, professor, other_professor) -> None:
    auth = booking.authorizer
    reservation = _reservation()

    assert auth.is_reservation_owner(professor, reservation)
    assert not auth.is_reservation_owner(other_professor, reservation)
    assert not auth.can_manage_reservation(professor, reservation)
    assert auth.can_view_reservation(professor, reservation)
    assert not auth.can_view_reservation(other_professor, reservation)
    assert auth.get_managed_labs(professor) == []


def test_predicates_return_false_for_missing_inputs(booking, manager) -> None:
    auth = booking.authorizer

    assert not auth.is_admin(None)
    assert not auth.is_admin(User(user_id=99, email="norole@uni.test", role=None))
    assert not auth.is_lab_manager_for_lab(None, CHEM_LAB)
    assert not auth.is_lab_manager_for_lab(manager, None)
    assert not auth.can_manage_reservation(manager, None)
    assert not auth.is_reservation_owner(None, _reservation())
    assert auth.get_managed_labs(None) == []
    assert auth.get_pending_reservations_for_user(None) == []


def test_role_alone_does_not_grant_lab_access(booking) -> None:
    unassigned = User(user_id=77, email="new-manager@uni.test", role=Role.LAB_MANAGER)

    assert not booking.authorizer.is_lab_manager_for_lab(unassigned, CHEM_LAB)


def test_pending_reservations_are_scoped_to_managed_labs(booking, professor, admin, manager, physics_manager) -> None:
    chem = booking.lifecycle.create(create_command(), professor)
    physics = booking.lifecycle.create(
        create_command(lab_id=PHYSICS_LAB, whole_lab=False, workstation_ids=[21]),
        professor,
    )
    approved = booking.lifecycle.create(create_command(start_time=at(3, 10), end_time=at(3, 11)), professor)
    booking.lifecycle.approve(approved.reservation_id, manager)

    def ids(user):
        return {r.reservation_id for r in booking.authorizer.get_pending_reservations_for_user(user)}

    assert ids(admin) == {chem.reservation_id, physics.reservation_id}
    assert ids(manager) == {chem.reservation_id}
    assert ids(physics_manager) == {physics.reservation_id}
    assert ids(professor) == set()
    assert all(r.status is ReservationStatus.PENDING for r in booking.lifecycle.get_pending_for_manager(admin))
