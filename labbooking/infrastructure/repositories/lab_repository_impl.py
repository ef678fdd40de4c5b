from __future__ import annotations

from datetime import date

from sqlalchemy import or_
from sqlalchemy.orm import Session

from labbooking.core.entities.lab import Lab, LabClosedDay, LabManagerAssignment, LabOperatingHours, Workstation, day_of_week
from labbooking.core.repositories.lab_repository import LabRepository
from labbooking.infrastructure.models.models import (
    LabClosedDayModel,
    LabManagerModel,
    LabModel,
    LabOperatingHoursModel,
    WorkstationModel,
)


class LabRepositoryImpl(LabRepository):
    """SQLAlchemy implementation of the read-only lab catalog."""

    def __init__(self, db: Session) -> None:
        self._db = db

    @staticmethod
    def _to_lab(row: LabModel) -> Lab:
        return Lab(
            lab_id=row.lab_id,
            name=row.name,
            default_open_time=row.default_open_time,
            default_close_time=row.default_close_time,
        )

    def get(self, lab_id: int) -> Lab | None:
        row = self._db.get(LabModel, lab_id)
        return self._to_lab(row) if row is not None else None

    def list_all(self) -> list[Lab]:
        rows = self._db.query(LabModel).order_by(LabModel.lab_id).all()
        return [self._to_lab(row) for row in rows]

    def get_workstation(self, workstation_id: int) -> Workstation | None:
        row = self._db.get(WorkstationModel, workstation_id)
        if row is None:
            return None

        return Workstation(
            workstation_id=row.workstation_id,
            lab_id=row.lab_id,
            identifier=row.identifier,
            active=row.active,
        )

    def get_operating_hours(self, lab_id: int, day_of_week: int) -> LabOperatingHours | None:
        row = (
            self._db.query(LabOperatingHoursModel)
            .filter(LabOperatingHoursModel.lab_id == lab_id)
            .filter(LabOperatingHoursModel.day_of_week == day_of_week)
            .one_or_none()
        )
        if row is None:
            return None

        return LabOperatingHours(
            lab_id=row.lab_id,
            day_of_week=row.day_of_week,
            open_time=row.open_time,
            close_time=row.close_time,
            is_closed=row.is_closed,
        )

    def list_closed_days(self, lab_id: int, day: date) -> list[LabClosedDay]:
        rows = (
            self._db.query(LabClosedDayModel)
            .filter(or_(LabClosedDayModel.lab_id == lab_id, LabClosedDayModel.lab_id.is_(None)))
            .filter(
                or_(
                    LabClosedDayModel.specific_date == day,
                    LabClosedDayModel.recurring_day_of_week == day_of_week(day),
                )
            )
            .all()
        )
        return [
            LabClosedDay(
                lab_id=row.lab_id,
                specific_date=row.specific_date,
                recurring_day_of_week=row.recurring_day_of_week,
                reason=row.reason,
            )
            for row in rows
        ]

    def list_manager_assignments(self, *, user_id: int | None = None, lab_id: int | None = None) -> list[LabManagerAssignment]:
        q = self._db.query(LabManagerModel)
        if user_id is not None:
            q = q.filter(LabManagerModel.user_id == user_id)
        if lab_id is not None:
            q = q.filter(LabManagerModel.lab_id == lab_id)

        rows = q.order_by(LabManagerModel.lab_id, LabManagerModel.user_id).all()
        return [LabManagerAssignment(user_id=row.user_id, lab_id=row.lab_id, is_primary=row.is_primary) for row in rows]
