from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import UUID

from labbooking.core.entities.edit_proposal import ReservationEditProposal


class EditProposalRepository(ABC):
    @abstractmethod
    def get_pending(self, reservation_id: UUID) -> ReservationEditProposal | None:
        raise NotImplementedError

    @abstractmethod
    def list_pending_for_group(self, recurring_group_id: UUID) -> list[ReservationEditProposal]:
        raise NotImplementedError

    @abstractmethod
    def list_for_reservation(self, reservation_id: UUID) -> list[ReservationEditProposal]:
        """Full proposal history of a reservation, oldest first."""
        raise NotImplementedError

    @abstractmethod
    def upsert(self, proposal: ReservationEditProposal) -> None:
        raise NotImplementedError
