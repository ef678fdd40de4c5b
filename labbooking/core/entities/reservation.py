from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable
from uuid import UUID


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PENDING_EDIT_APPROVAL = "PENDING_EDIT_APPROVAL"


@dataclass(frozen=True, slots=True)
class FieldSnapshot:
    """
    The editable fields of a reservation, captured as one value.

    Used both for the original values of an edit proposal and for the proposed ones.
    """

    start_time: datetime
    end_time: datetime
    description: str | None = None
    whole_lab: bool = False
    workstation_ids: tuple[int, ...] = ()

    @classmethod
    def build(
        cls,
        *,
        start_time: datetime,
        end_time: datetime,
        description: str | None,
        whole_lab: bool | None,
        workstation_ids: Iterable[int] | None,
    ) -> FieldSnapshot:
        return cls(
            start_time=start_time,
            end_time=end_time,
            description=description,
            whole_lab=bool(whole_lab),
            workstation_ids=tuple(workstation_ids or ()),
        )

    @classmethod
    def of(cls, reservation: Reservation) -> FieldSnapshot:
        return cls.build(
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            description=reservation.description,
            whole_lab=reservation.whole_lab,
            workstation_ids=reservation.workstation_ids,
        )

    def apply_to(self, reservation: Reservation) -> None:
        reservation.start_time = self.start_time
        reservation.end_time = self.end_time
        reservation.description = self.description
        reservation.whole_lab = self.whole_lab
        # Workstation associations only exist for partial-lab reservations
        reservation.workstation_ids = [] if self.whole_lab else list(self.workstation_ids)


@dataclass(slots=True)
class Reservation:
    reservation_id: UUID
    lab_id: int
    user_id: int
    start_time: datetime
    end_time: datetime
    description: str | None = None
    status: ReservationStatus = ReservationStatus.PENDING
    whole_lab: bool = False
    workstation_ids: list[int] = field(default_factory=list)
    recurring_group_id: UUID | None = None
    created_at: datetime | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurring_group_id is not None

    def mark_approved(self) -> None:
        self.status = ReservationStatus.APPROVED

    def mark_rejected(self) -> None:
        self.status = ReservationStatus.REJECTED

    def mark_pending_edit_approval(self) -> None:
        self.status = ReservationStatus.PENDING_EDIT_APPROVAL
