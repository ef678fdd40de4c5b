from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable
from uuid import UUID, uuid4

from labbooking.core.entities.edit_proposal import ReservationEditProposal
from labbooking.core.entities.lab import Lab
from labbooking.core.entities.reservation import FieldSnapshot, Reservation, ReservationStatus
from labbooking.core.entities.user import User
from labbooking.core.errors import (
    AlreadyHasPendingProposalError,
    EditAlreadyResolvedError,
    EditProposalNotFoundError,
    InvalidStateError,
    LabNotFoundError,
    NotAuthorizedError,
    ReservationNotFoundError,
)
from labbooking.core.repositories.edit_proposal_repository import EditProposalRepository
from labbooking.core.repositories.lab_repository import LabRepository
from labbooking.core.repositories.reservation_repository import ReservationRepository
from labbooking.core.use_cases.authorization import Authorizer
from labbooking.core.use_cases.commands import EditReservationCommand
from labbooking.core.use_cases.notifier import ReservationNotifier
from labbooking.core.use_cases.recurring_group import FanOutResult, RecurringGroupCoordinator
from labbooking.core.use_cases.validate_reservation import Clock, ReservationValidator, utc_now

logger = logging.getLogger(__name__)


class Side(str, Enum):
    """The two parties of the edit workflow."""

    MANAGER = "MANAGER"
    OWNER = "OWNER"


def counterparty_of(proposal: ReservationEditProposal, reservation: Reservation) -> Side:
    """
    The side that must ratify `proposal`.

    An edit made by the reservation owner goes to the lab managers, any other edit goes to the owner.
    """
    if proposal.edited_by == reservation.user_id:
        return Side.MANAGER
    return Side.OWNER


class EditOutcome(str, Enum):
    APPLIED = "APPLIED"
    PROPOSED = "PROPOSED"


@dataclass(frozen=True, slots=True)
class EditResult:
    outcome: EditOutcome
    reservation: Reservation
    proposal: ReservationEditProposal | None = None


class EditProposalEngine:
    """
    Dual-actor edit workflow on top of reservations.

    Managers' edits always become proposals the owner has to ratify. Owners' edits are applied in place
    while the reservation is still PENDING and become proposals for the managers once it is APPROVED.
    Approving a proposal applies the proposed fields and approves the reservation; rejecting it restores
    the original fields and status.
    """

    def __init__(
        self,
        *,
        reservation_repo: ReservationRepository,
        proposal_repo: EditProposalRepository,
        lab_repo: LabRepository,
        authorizer: Authorizer,
        validator: ReservationValidator,
        coordinator: RecurringGroupCoordinator,
        notifier: ReservationNotifier,
        clock: Clock = utc_now,
        id_factory: Callable[[], UUID] = uuid4,
    ) -> None:
        self._reservation_repo = reservation_repo
        self._proposal_repo = proposal_repo
        self._lab_repo = lab_repo
        self._authorizer = authorizer
        self._validator = validator
        self._coordinator = coordinator
        self._notifier = notifier
        self._clock = clock
        self._id_factory = id_factory

    # -----------------------------
    # Reads
    # -----------------------------
    def get_active_proposal(self, reservation_id: UUID) -> ReservationEditProposal | None:
        return self._proposal_repo.get_pending(reservation_id)

    def list_proposals(self, reservation_id: UUID) -> list[ReservationEditProposal]:
        return self._proposal_repo.list_for_reservation(reservation_id)

    # -----------------------------
    # Internal helpers
    # -----------------------------
    def _get_reservation(self, reservation_id: UUID) -> Reservation:
        reservation = self._reservation_repo.get(reservation_id)
        if reservation is None:
            logger.warning("Reservation not found: %s", reservation_id)
            raise ReservationNotFoundError(f"Reservation not found: {reservation_id}")
        return reservation

    def _get_lab(self, reservation: Reservation) -> Lab:
        lab = self._lab_repo.get(reservation.lab_id)
        if lab is None:
            raise LabNotFoundError(f"Lab not found: {reservation.lab_id}")
        return lab

    def _require_manager(self, actor: User, reservation: Reservation, action: str) -> None:
        if not self._authorizer.can_manage_reservation(actor, reservation):
            logger.warning("User %s is not authorized to %s reservation %s", actor.email, action, reservation.reservation_id)
            raise NotAuthorizedError(f"You are not authorized to {action} this reservation")

    def _require_owner(self, actor: User, reservation: Reservation, action: str) -> None:
        if not self._authorizer.is_reservation_owner(actor, reservation):
            logger.warning("User %s is not the owner of reservation %s", actor.email, reservation.reservation_id)
            raise NotAuthorizedError(f"You can only {action} your own reservations")

    def _validate(self, reservation: Reservation, snapshot: FieldSnapshot) -> FieldSnapshot:
        workstations = self._validator.validate(
            self._get_lab(reservation),
            snapshot.start_time,
            snapshot.end_time,
            snapshot.whole_lab,
            snapshot.workstation_ids,
        )
        if snapshot.whole_lab:
            return snapshot
        return FieldSnapshot.build(
            start_time=snapshot.start_time,
            end_time=snapshot.end_time,
            description=snapshot.description,
            whole_lab=False,
            workstation_ids=[w.workstation_id for w in workstations],
        )

    def _ensure_no_pending(self, reservation: Reservation) -> None:
        if self._proposal_repo.get_pending(reservation.reservation_id) is not None:
            logger.warning("Reservation %s already has a pending edit proposal", reservation.reservation_id)
            raise AlreadyHasPendingProposalError()

    def _open_proposal(self, reservation: Reservation, proposed: FieldSnapshot, editor: User) -> ReservationEditProposal:
        self._ensure_no_pending(reservation)
        proposal = ReservationEditProposal(
            proposal_id=self._id_factory(),
            reservation_id=reservation.reservation_id,
            edited_by=editor.user_id,
            original_status=reservation.status,
            original=FieldSnapshot.of(reservation),
            proposed=proposed,
            created_at=self._clock(),
        )
        self._proposal_repo.upsert(proposal)

        reservation.mark_pending_edit_approval()
        self._reservation_repo.upsert(reservation)
        logger.info(
            "Edit proposal %s created for reservation %s by %s (%s -> %s)",
            proposal.proposal_id, reservation.reservation_id, editor.email,
            proposal.original_status.value, reservation.status.value,
        )
        return proposal

    def _apply_directly(self, reservation: Reservation, proposed: FieldSnapshot) -> None:
        proposed.apply_to(reservation)
        self._reservation_repo.upsert(reservation)
        logger.info("Reservation %s edited directly by owner (status %s)", reservation.reservation_id, reservation.status.value)

    @staticmethod
    def _snapshot(command: EditReservationCommand) -> FieldSnapshot:
        return FieldSnapshot.build(
            start_time=command.start_time,
            end_time=command.end_time,
            description=command.description,
            whole_lab=command.whole_lab,
            workstation_ids=command.workstation_ids,
        )

    # -----------------------------
    # Proposing
    # -----------------------------
    def propose(self, reservation_id: UUID, command: EditReservationCommand, actor: User) -> EditResult:
        """Routes the edit by the actor's relation to the reservation: managers first, then the owner."""
        reservation = self._get_reservation(reservation_id)
        if self._authorizer.can_manage_reservation(actor, reservation):
            return self.edit_by_manager(reservation_id, command, actor)
        if self._authorizer.is_reservation_owner(actor, reservation):
            return self.edit_by_professor(reservation_id, command, actor)
        logger.warning("User %s may not edit reservation %s", actor.email, reservation_id)
        raise NotAuthorizedError("You are not authorized to edit this reservation")

    def _manager_edit(self, reservation: Reservation, proposed: FieldSnapshot, manager: User) -> EditResult:
        proposal = self._open_proposal(reservation, proposed, manager)
        self._notifier.edit_proposed_to_professor(reservation, proposal)
        return EditResult(outcome=EditOutcome.PROPOSED, reservation=reservation, proposal=proposal)

    def edit_by_manager(self, reservation_id: UUID, command: EditReservationCommand, manager: User) -> EditResult:
        logger.info("Manager %s attempting to edit reservation %s", manager.email, reservation_id)
        reservation = self._get_reservation(reservation_id)
        self._require_manager(manager, reservation, "edit")
        proposed = self._validate(reservation, self._snapshot(command))
        return self._manager_edit(reservation, proposed, manager)

    def edit_occurrence_by_manager(
        self,
        occurrence_id: UUID,
        command: EditReservationCommand,
        manager: User,
        recurring_group_id: UUID | None = None,
    ) -> EditResult:
        logger.info("Manager %s attempting to edit single occurrence %s", manager.email, occurrence_id)
        occurrence = self._get_reservation(occurrence_id)
        if occurrence.recurring_group_id is None:
            logger.warning("Reservation %s is not part of a recurring group", occurrence_id)
            raise InvalidStateError("This reservation is not part of a recurring group. Edit it as a single reservation instead.")
        if recurring_group_id is not None and occurrence.recurring_group_id != recurring_group_id:
            logger.warning("Reservation %s is not an occurrence of recurring group %s", occurrence_id, recurring_group_id)
            raise ReservationNotFoundError(f"Occurrence {occurrence_id} not found in recurring group {recurring_group_id}")
        self._require_manager(manager, occurrence, "edit")
        proposed = self._validate(occurrence, self._snapshot(command))
        return self._manager_edit(occurrence, proposed, manager)

    def _professor_edit(self, reservation: Reservation, proposed: FieldSnapshot, professor: User) -> EditResult:
        if reservation.status is ReservationStatus.PENDING:
            self._apply_directly(reservation, proposed)
            return EditResult(outcome=EditOutcome.APPLIED, reservation=reservation)
        if reservation.status is ReservationStatus.APPROVED:
            proposal = self._open_proposal(reservation, proposed, professor)
            return EditResult(outcome=EditOutcome.PROPOSED, reservation=reservation, proposal=proposal)

        logger.warning("Cannot edit reservation %s with status %s", reservation.reservation_id, reservation.status.value)
        raise InvalidStateError("Only PENDING or APPROVED reservations can be edited")

    def edit_by_professor(self, reservation_id: UUID, command: EditReservationCommand, professor: User) -> EditResult:
        logger.info("Professor %s attempting to edit reservation %s", professor.email, reservation_id)
        reservation = self._get_reservation(reservation_id)
        self._require_owner(professor, reservation, "edit")
        proposed = self._validate(reservation, self._snapshot(command))
        self._ensure_no_pending(reservation)

        result = self._professor_edit(reservation, proposed, professor)
        if result.outcome is EditOutcome.APPLIED:
            self._notifier.reservation_updated(reservation)
        else:
            self._notifier.edit_proposed_to_managers(reservation)
        return result

    # -----------------------------
    # Group proposing
    # -----------------------------
    def _shifted(self, member: Reservation, anchor: Reservation, command: EditReservationCommand) -> FieldSnapshot:
        """The edit re-based onto `member`: the time shift requested for the anchor applies to every occurrence."""
        start_shift = command.start_time - anchor.start_time
        end_shift = command.end_time - anchor.end_time
        return FieldSnapshot.build(
            start_time=member.start_time + start_shift,
            end_time=member.end_time + end_shift,
            description=command.description,
            whole_lab=command.whole_lab,
            workstation_ids=command.workstation_ids,
        )

    def _upcoming(self, members: list[Reservation]) -> list[Reservation]:
        now = self._clock()
        upcoming = [m for m in members if m.start_time > now]
        for member in members:
            if member.start_time <= now:
                logger.warning("Occurrence %s has already started, leaving it unchanged", member.reservation_id)
        return upcoming

    def edit_group_by_manager(self, recurring_group_id: UUID, command: EditReservationCommand, manager: User) -> FanOutResult:
        logger.info("Manager %s attempting to edit recurring group %s", manager.email, recurring_group_id)
        members = self._coordinator.load_members(recurring_group_id)
        anchor = self._coordinator.representative(members)
        self._require_manager(manager, anchor, "edit")

        proposed = {m.reservation_id: self._validate(m, self._shifted(m, anchor, command)) for m in self._upcoming(members)}
        proposals: list[ReservationEditProposal] = []

        def _apply(member: Reservation) -> bool:
            if member.reservation_id not in proposed:
                return False
            proposals.append(self._open_proposal(member, proposed[member.reservation_id], manager))
            return True

        result = self._coordinator.fan_out(members, _apply)
        logger.info(
            "Edit proposals created for %d reservations in recurring group %s by manager %s",
            len(result.applied), recurring_group_id, manager.email,
        )
        if proposals:
            self._notifier.edit_proposed_to_professor(result.applied[0], proposals[0])
        return result

    def edit_group_by_professor(self, recurring_group_id: UUID, command: EditReservationCommand, professor: User) -> FanOutResult:
        logger.info("Professor %s attempting to edit recurring group %s", professor.email, recurring_group_id)
        members = self._coordinator.load_members(recurring_group_id)
        for member in members:
            self._require_owner(professor, member, "edit")
        anchor = self._coordinator.representative(members)

        editable = [
            m for m in self._upcoming(members)
            if m.status in (ReservationStatus.PENDING, ReservationStatus.APPROVED)
        ]
        proposed = {m.reservation_id: self._validate(m, self._shifted(m, anchor, command)) for m in editable}
        applied_directly: list[Reservation] = []
        proposed_for: list[Reservation] = []

        def _apply(member: Reservation) -> bool:
            if member.reservation_id not in proposed:
                return False
            self._ensure_no_pending(member)
            result = self._professor_edit(member, proposed[member.reservation_id], professor)
            (applied_directly if result.outcome is EditOutcome.APPLIED else proposed_for).append(member)
            return True

        result = self._coordinator.fan_out(members, _apply)
        logger.info(
            "Edited recurring group %s: %d PENDING (direct), %d APPROVED (needs re-approval), %d skipped",
            recurring_group_id, len(applied_directly), len(proposed_for), len(result.skipped),
        )
        if applied_directly:
            self._notifier.reservation_updated(applied_directly[0])
        if proposed_for:
            self._notifier.edit_proposed_to_managers(proposed_for[0])
        return result

    # -----------------------------
    # Resolving
    # -----------------------------
    def _get_pending_proposal(self, reservation: Reservation) -> ReservationEditProposal:
        proposal = self._proposal_repo.get_pending(reservation.reservation_id)
        if proposal is not None:
            return proposal
        if self._proposal_repo.list_for_reservation(reservation.reservation_id):
            logger.warning("Edit proposals for reservation %s are already resolved", reservation.reservation_id)
            raise EditAlreadyResolvedError(f"Edit proposal for reservation {reservation.reservation_id} has already been resolved")
        logger.warning("No active edit proposal found for reservation %s", reservation.reservation_id)
        raise EditProposalNotFoundError(f"No active edit proposal found for reservation: {reservation.reservation_id}")

    @staticmethod
    def _check_counterparty(proposal: ReservationEditProposal, reservation: Reservation, side: Side, resolver: User) -> None:
        if counterparty_of(proposal, reservation) is not side:
            logger.warning("Edit proposal %s cannot be resolved by the %s side", proposal.proposal_id, side.value.lower())
            if side is Side.MANAGER:
                raise InvalidStateError("This edit proposal was not created by the reservation owner")
            raise InvalidStateError("This edit proposal was not created by a lab manager")
        if proposal.edited_by == resolver.user_id:
            logger.warning("User %s attempted to resolve their own edit proposal %s", resolver.email, proposal.proposal_id)
            raise InvalidStateError("You cannot resolve your own edit proposal")

    def _apply_proposal(self, reservation: Reservation, proposal: ReservationEditProposal, resolver: User) -> None:
        proposal.proposed.apply_to(reservation)
        # An approved edit always leaves the reservation APPROVED, whatever the original status was
        reservation.mark_approved()
        try:
            proposal.mark_approved(resolved_by=resolver.user_id, resolved_at=self._clock())
        except ValueError as e:
            raise EditAlreadyResolvedError(str(e)) from e
        self._reservation_repo.upsert(reservation)
        self._proposal_repo.upsert(proposal)
        logger.debug("Applied edit proposal %s to reservation %s", proposal.proposal_id, reservation.reservation_id)

    def _restore_original(self, reservation: Reservation, proposal: ReservationEditProposal, resolver: User, reason: str | None) -> None:
        proposal.original.apply_to(reservation)
        reservation.status = proposal.original_status
        try:
            proposal.mark_rejected(resolved_by=resolver.user_id, resolved_at=self._clock(), reason=reason)
        except ValueError as e:
            raise EditAlreadyResolvedError(str(e)) from e
        self._reservation_repo.upsert(reservation)
        self._proposal_repo.upsert(proposal)
        logger.debug("Restored original values for reservation %s from edit proposal %s", reservation.reservation_id, proposal.proposal_id)

    def _resolve(self, reservation_id: UUID, resolver: User, side: Side, *, approve: bool, reason: str | None) -> Reservation:
        verb = "approve" if approve else "reject"
        logger.info("%s %s attempting to %s edit for reservation %s", side.value.title(), resolver.email, verb, reservation_id)

        reservation = self._get_reservation(reservation_id)
        if side is Side.MANAGER:
            self._require_manager(resolver, reservation, f"{verb} edits of")
        else:
            self._require_owner(resolver, reservation, f"{verb} edits to")

        proposal = self._get_pending_proposal(reservation)
        self._check_counterparty(proposal, reservation, side, resolver)

        if approve:
            self._apply_proposal(reservation, proposal, resolver)
        else:
            self._restore_original(reservation, proposal, resolver, reason)
        logger.info("Edit %sd for reservation %s by %s", verb, reservation_id, resolver.email)

        if side is Side.MANAGER:
            self._notifier.edit_resolved_by_manager(reservation, proposal, approved=approve, reason=reason)
        else:
            self._notifier.edit_resolved_by_professor(reservation, proposal, approved=approve, reason=reason)
        return reservation

    def approve_by_manager(self, reservation_id: UUID, manager: User) -> Reservation:
        return self._resolve(reservation_id, manager, Side.MANAGER, approve=True, reason=None)

    def reject_by_manager(self, reservation_id: UUID, manager: User, reason: str | None = None) -> Reservation:
        return self._resolve(reservation_id, manager, Side.MANAGER, approve=False, reason=reason)

    def approve_by_professor(self, reservation_id: UUID, professor: User) -> Reservation:
        return self._resolve(reservation_id, professor, Side.OWNER, approve=True, reason=None)

    def reject_by_professor(self, reservation_id: UUID, professor: User, reason: str | None = None) -> Reservation:
        return self._resolve(reservation_id, professor, Side.OWNER, approve=False, reason=reason)

    # -----------------------------
    # Group resolving
    # -----------------------------
    def _resolve_group(self, recurring_group_id: UUID, resolver: User, side: Side, *, approve: bool, reason: str | None) -> FanOutResult:
        verb = "approve" if approve else "reject"
        logger.info("%s %s attempting to %s edit for recurring group %s", side.value.title(), resolver.email, verb, recurring_group_id)

        members = self._coordinator.load_members(recurring_group_id)
        if side is Side.MANAGER:
            self._require_manager(resolver, self._coordinator.representative(members), f"{verb} edits of")
        else:
            for member in members:
                self._require_owner(resolver, member, f"{verb} edits to")

        pending = {p.reservation_id: p for p in self._proposal_repo.list_pending_for_group(recurring_group_id)}
        if not pending:
            logger.warning("No active edit proposals found for recurring group %s", recurring_group_id)
            raise EditProposalNotFoundError(f"No active edit proposals found for recurring group: {recurring_group_id}")

        resolvable = {
            reservation_id: proposal for reservation_id, proposal in pending.items()
            if proposal.edited_by != resolver.user_id
            and counterparty_of(proposal, self._reservation_by_id(members, reservation_id)) is side
        }
        if not resolvable:
            logger.warning("No edit proposals in recurring group %s await the %s side", recurring_group_id, side.value.lower())
            raise InvalidStateError("No edit proposals in this recurring group are awaiting your decision")

        resolved: list[tuple[Reservation, ReservationEditProposal]] = []

        def _apply(member: Reservation) -> bool:
            proposal = resolvable.get(member.reservation_id)
            if proposal is None:
                return False
            if approve:
                self._apply_proposal(member, proposal, resolver)
            else:
                self._restore_original(member, proposal, resolver, reason)
            resolved.append((member, proposal))
            return True

        result = self._coordinator.fan_out(members, _apply)
        logger.info("%sd %d edit proposals in recurring group %s by %s", verb.title(), len(resolved), recurring_group_id, resolver.email)

        reservation, proposal = resolved[0]
        if side is Side.MANAGER:
            self._notifier.edit_resolved_by_manager(reservation, proposal, approved=approve, reason=reason)
        else:
            self._notifier.edit_resolved_by_professor(reservation, proposal, approved=approve, reason=reason)
        return result

    @staticmethod
    def _reservation_by_id(members: list[Reservation], reservation_id: UUID) -> Reservation:
        return next(m for m in members if m.reservation_id == reservation_id)

    def approve_group_by_manager(self, recurring_group_id: UUID, manager: User) -> FanOutResult:
        return self._resolve_group(recurring_group_id, manager, Side.MANAGER, approve=True, reason=None)

    def reject_group_by_manager(self, recurring_group_id: UUID, manager: User, reason: str | None = None) -> FanOutResult:
        return self._resolve_group(recurring_group_id, manager, Side.MANAGER, approve=False, reason=reason)

    def approve_group_by_professor(self, recurring_group_id: UUID, professor: User) -> FanOutResult:
        return self._resolve_group(recurring_group_id, professor, Side.OWNER, approve=True, reason=None)

    def reject_group_by_professor(self, recurring_group_id: UUID, professor: User, reason: str | None = None) -> FanOutResult:
        return self._resolve_group(recurring_group_id, professor, Side.OWNER, approve=False, reason=reason)
