from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, Field

from labbooking.core.entities.edit_proposal import ResolutionStatus
from labbooking.core.entities.recurring_pattern import RecurrenceType
from labbooking.core.entities.reservation import ReservationStatus


# -----------------------------
# Requests
# -----------------------------
class RecurringPatternIn(BaseModel):
    pattern_type: str
    interval_days: int | None = None
    end_date: date | None = None
    occurrences: int | None = None


class ReservationCreate(BaseModel):
    lab_id: int
    start_time: AwareDatetime
    end_time: AwareDatetime
    description: str | None = None
    whole_lab: bool = False
    workstation_ids: list[int] = Field(default_factory=list)
    recurring: RecurringPatternIn | None = None


class ReservationEdit(BaseModel):
    start_time: AwareDatetime
    end_time: AwareDatetime
    description: str | None = None
    whole_lab: bool = False
    workstation_ids: list[int] | None = None


class DecisionReason(BaseModel):
    reason: str | None = None


# -----------------------------
# Responses
# -----------------------------
class Reservation(BaseModel):
    reservation_id: UUID
    lab_id: int
    user_id: int
    start_time: datetime
    end_time: datetime
    description: str | None
    status: ReservationStatus
    whole_lab: bool
    workstation_ids: list[int]
    recurring_group_id: UUID | None
    created_at: datetime | None


class FieldSnapshot(BaseModel):
    start_time: datetime
    end_time: datetime
    description: str | None
    whole_lab: bool
    workstation_ids: list[int]


class EditProposal(BaseModel):
    proposal_id: UUID
    reservation_id: UUID
    edited_by: int
    original_status: ReservationStatus
    original: FieldSnapshot
    proposed: FieldSnapshot
    resolution: ResolutionStatus
    created_at: datetime | None
    resolved_by: int | None
    resolved_at: datetime | None
    rejection_reason: str | None


class ReservationDetail(Reservation):
    active_edit_proposal: EditProposal | None = None


class RecurringSeries(BaseModel):
    recurring_group_id: UUID
    pattern_type: RecurrenceType
    total_occurrences: int
    reservations: list[Reservation]


class Lab(BaseModel):
    lab_id: int
    name: str
    default_open_time: time | None
    default_close_time: time | None


class Error(BaseModel):
    code: str
    detail: str
