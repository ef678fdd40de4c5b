from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable
from uuid import UUID

from labbooking.core.entities.reservation import Reservation, ReservationStatus


class ReservationRepository(ABC):
    @abstractmethod
    def get(self, reservation_id: UUID) -> Reservation | None:
        raise NotImplementedError

    @abstractmethod
    def upsert(self, reservation: Reservation) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_by_user(self, user_id: int, status: ReservationStatus | None = None) -> list[Reservation]:
        raise NotImplementedError

    @abstractmethod
    def list_by_status(self, status: ReservationStatus, lab_ids: Iterable[int] | None = None) -> list[Reservation]:
        """Reservations in `status`, optionally restricted to `lab_ids`, oldest first."""
        raise NotImplementedError

    @abstractmethod
    def list_by_recurring_group(self, recurring_group_id: UUID) -> list[Reservation]:
        raise NotImplementedError
