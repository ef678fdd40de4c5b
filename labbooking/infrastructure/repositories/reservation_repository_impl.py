from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from labbooking.core.entities.reservation import Reservation, ReservationStatus
from labbooking.core.repositories.reservation_repository import ReservationRepository
from labbooking.infrastructure.models.models import ReservationModel, ReservationWorkstationModel

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ReservationRepositoryImpl(ReservationRepository):
    """
    SQLAlchemy implementation for reservations and their workstation associations.

    Writes are flushed, never committed: the caller owns the transaction.
    Ordering happens on the loaded entities since timestamps are stored with their own offsets.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    @staticmethod
    def _to_entity(row: ReservationModel) -> Reservation:
        return Reservation(
            reservation_id=UUID(row.reservation_id),
            lab_id=row.lab_id,
            user_id=row.user_id,
            start_time=row.start_time,
            end_time=row.end_time,
            description=row.description,
            status=row.status,
            whole_lab=row.whole_lab,
            workstation_ids=[link.workstation_id for link in row.workstation_links],
            recurring_group_id=UUID(row.recurring_group_id) if row.recurring_group_id else None,
            created_at=row.created_at,
        )

    def _query(self):
        return self._db.query(ReservationModel).options(selectinload(ReservationModel.workstation_links))

    def get(self, reservation_id: UUID) -> Reservation | None:
        row = self._db.get(ReservationModel, str(reservation_id))
        return self._to_entity(row) if row is not None else None

    def upsert(self, reservation: Reservation) -> None:
        row = self._db.get(ReservationModel, str(reservation.reservation_id))
        if row is None:
            row = ReservationModel(reservation_id=str(reservation.reservation_id))

        row.lab_id = reservation.lab_id
        row.user_id = reservation.user_id
        row.start_time = reservation.start_time
        row.end_time = reservation.end_time
        row.description = reservation.description
        row.status = reservation.status
        row.whole_lab = reservation.whole_lab
        row.recurring_group_id = str(reservation.recurring_group_id) if reservation.recurring_group_id else None
        row.created_at = reservation.created_at

        wanted = [] if reservation.whole_lab else list(dict.fromkeys(reservation.workstation_ids))
        kept = [link for link in row.workstation_links if link.workstation_id in wanted]
        existing = {link.workstation_id for link in kept}
        row.workstation_links = kept + [
            ReservationWorkstationModel(workstation_id=workstation_id)
            for workstation_id in wanted
            if workstation_id not in existing
        ]

        self._db.add(row)
        self._db.flush()

    def list_by_user(self, user_id: int, status: ReservationStatus | None = None) -> list[Reservation]:
        q = self._query().filter(ReservationModel.user_id == user_id)
        if status is not None:
            q = q.filter(ReservationModel.status == status)
        reservations = [self._to_entity(row) for row in q.all()]
        return sorted(reservations, key=lambda r: r.start_time, reverse=True)

    def list_by_status(self, status: ReservationStatus, lab_ids: Iterable[int] | None = None) -> list[Reservation]:
        q = self._query().filter(ReservationModel.status == status)
        if lab_ids is not None:
            lab_ids = list(lab_ids)
            if not lab_ids:
                return []
            q = q.filter(ReservationModel.lab_id.in_(lab_ids))
        reservations = [self._to_entity(row) for row in q.all()]
        return sorted(reservations, key=lambda r: r.created_at or _EPOCH)

    def list_by_recurring_group(self, recurring_group_id: UUID) -> list[Reservation]:
        rows = self._query().filter(ReservationModel.recurring_group_id == str(recurring_group_id)).all()
        return sorted((self._to_entity(row) for row in rows), key=lambda r: r.start_time)
