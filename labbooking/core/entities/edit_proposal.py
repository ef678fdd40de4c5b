from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from labbooking.core.entities.reservation import FieldSnapshot, ReservationStatus


class ResolutionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass(slots=True)
class ReservationEditProposal:
    proposal_id: UUID
    reservation_id: UUID
    edited_by: int
    original_status: ReservationStatus
    original: FieldSnapshot
    proposed: FieldSnapshot
    resolution: ResolutionStatus = ResolutionStatus.PENDING
    created_at: datetime | None = None
    resolved_by: int | None = None
    resolved_at: datetime | None = None
    rejection_reason: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.resolution is ResolutionStatus.PENDING

    def _resolve(self, resolution: ResolutionStatus, resolved_by: int, resolved_at: datetime) -> None:
        if not self.is_pending:
            raise ValueError(f"Edit proposal {self.proposal_id} is already {self.resolution.value}")
        self.resolution = resolution
        self.resolved_by = resolved_by
        self.resolved_at = resolved_at

    def mark_approved(self, *, resolved_by: int, resolved_at: datetime) -> None:
        self._resolve(ResolutionStatus.APPROVED, resolved_by, resolved_at)

    def mark_rejected(self, *, resolved_by: int, resolved_at: datetime, reason: str | None = None) -> None:
        self._resolve(ResolutionStatus.REJECTED, resolved_by, resolved_at)
        self.rejection_reason = reason
