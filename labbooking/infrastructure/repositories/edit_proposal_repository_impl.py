from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from labbooking.core.entities.edit_proposal import ReservationEditProposal, ResolutionStatus
from labbooking.core.entities.reservation import FieldSnapshot
from labbooking.core.errors import AlreadyHasPendingProposalError
from labbooking.core.repositories.edit_proposal_repository import EditProposalRepository
from labbooking.infrastructure.models.models import ReservationEditProposalModel, ReservationModel

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class EditProposalRepositoryImpl(EditProposalRepository):
    def __init__(self, db: Session) -> None:
        self._db = db

    @staticmethod
    def _to_entity(row: ReservationEditProposalModel) -> ReservationEditProposal:
        return ReservationEditProposal(
            proposal_id=UUID(row.proposal_id),
            reservation_id=UUID(row.reservation_id),
            edited_by=row.edited_by,
            original_status=row.original_status,
            original=FieldSnapshot.build(
                start_time=row.original_start_time,
                end_time=row.original_end_time,
                description=row.original_description,
                whole_lab=row.original_whole_lab,
                workstation_ids=row.original_workstation_ids,
            ),
            proposed=FieldSnapshot.build(
                start_time=row.proposed_start_time,
                end_time=row.proposed_end_time,
                description=row.proposed_description,
                whole_lab=row.proposed_whole_lab,
                workstation_ids=row.proposed_workstation_ids,
            ),
            resolution=row.resolution,
            created_at=row.created_at,
            resolved_by=row.resolved_by,
            resolved_at=row.resolved_at,
            rejection_reason=row.rejection_reason,
        )

    def get_pending(self, reservation_id: UUID) -> ReservationEditProposal | None:
        row = (
            self._db.query(ReservationEditProposalModel)
            .filter(ReservationEditProposalModel.reservation_id == str(reservation_id))
            .filter(ReservationEditProposalModel.resolution == ResolutionStatus.PENDING)
            .one_or_none()
        )
        return self._to_entity(row) if row is not None else None

    def list_pending_for_group(self, recurring_group_id: UUID) -> list[ReservationEditProposal]:
        rows = (
            self._db.query(ReservationEditProposalModel)
            .join(ReservationModel, ReservationModel.reservation_id == ReservationEditProposalModel.reservation_id)
            .filter(ReservationModel.recurring_group_id == str(recurring_group_id))
            .filter(ReservationEditProposalModel.resolution == ResolutionStatus.PENDING)
            .all()
        )
        return [self._to_entity(row) for row in rows]

    def list_for_reservation(self, reservation_id: UUID) -> list[ReservationEditProposal]:
        rows = (
            self._db.query(ReservationEditProposalModel)
            .filter(ReservationEditProposalModel.reservation_id == str(reservation_id))
            .all()
        )
        return sorted((self._to_entity(row) for row in rows), key=lambda p: p.created_at or _EPOCH)

    def upsert(self, proposal: ReservationEditProposal) -> None:
        row = self._db.get(ReservationEditProposalModel, str(proposal.proposal_id))
        if row is None:
            row = ReservationEditProposalModel(
                proposal_id=str(proposal.proposal_id),
                reservation_id=str(proposal.reservation_id),
                edited_by=proposal.edited_by,
                original_status=proposal.original_status,
                created_at=proposal.created_at,
            )

        original, proposed = proposal.original, proposal.proposed
        row.original_start_time = original.start_time
        row.original_end_time = original.end_time
        row.original_description = original.description
        row.original_whole_lab = original.whole_lab
        row.original_workstation_ids = list(original.workstation_ids)
        row.proposed_start_time = proposed.start_time
        row.proposed_end_time = proposed.end_time
        row.proposed_description = proposed.description
        row.proposed_whole_lab = proposed.whole_lab
        row.proposed_workstation_ids = list(proposed.workstation_ids)

        row.resolution = proposal.resolution
        row.resolved_by = proposal.resolved_by
        row.resolved_at = proposal.resolved_at
        row.rejection_reason = proposal.rejection_reason

        self._db.add(row)
        try:
            self._db.flush()
        except IntegrityError as e:
            # uq_reservation_edit_proposals_pending: a concurrent request opened one first
            if proposal.resolution is not ResolutionStatus.PENDING:
                raise
            raise AlreadyHasPendingProposalError() from e
