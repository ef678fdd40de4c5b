from __future__ import annotations

from datetime import date, datetime, time, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from labbooking.core.entities.edit_proposal import ResolutionStatus
from labbooking.core.entities.recurring_pattern import RecurrenceType
from labbooking.core.entities.reservation import ReservationStatus
from labbooking.core.entities.user import Role
from labbooking.infrastructure.database import Base


class AwareDateTime(TypeDecorator):
    """
    Timestamp stored as an ISO-8601 string so the UTC offset survives every backend.

    Naive values are taken to be UTC.
    """

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> str | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()

    def process_result_value(self, value: str | None, dialect) -> datetime | None:
        if value is None:
            return None
        return datetime.fromisoformat(value)


# -----------------------------
# Catalog
# -----------------------------
class UserModel(Base):
    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    role: Mapped[Role | None] = mapped_column(Enum(Role), nullable=True)


class LabModel(Base):
    __tablename__ = "labs"

    lab_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    default_open_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    default_close_time: Mapped[time | None] = mapped_column(Time, nullable=True)

    workstations = relationship("WorkstationModel", back_populates="lab", cascade="all, delete-orphan")


class WorkstationModel(Base):
    __tablename__ = "workstations"

    workstation_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lab_id: Mapped[int] = mapped_column(ForeignKey("labs.lab_id"), nullable=False, index=True)
    identifier: Mapped[str] = mapped_column(String, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    lab = relationship("LabModel", back_populates="workstations")


class LabOperatingHoursModel(Base):
    __tablename__ = "lab_operating_hours"
    __table_args__ = (UniqueConstraint("lab_id", "day_of_week", name="uq_lab_operating_hours_day"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lab_id: Mapped[int] = mapped_column(ForeignKey("labs.lab_id"), nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    open_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    close_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class LabClosedDayModel(Base):
    __tablename__ = "lab_closed_days"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # NULL lab_id: closure applies to every lab
    lab_id: Mapped[int | None] = mapped_column(ForeignKey("labs.lab_id"), nullable=True, index=True)
    specific_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    recurring_day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reason: Mapped[str | None] = mapped_column(String, nullable=True)


class LabManagerModel(Base):
    __tablename__ = "lab_managers"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.user_id"), primary_key=True)
    lab_id: Mapped[int] = mapped_column(ForeignKey("labs.lab_id"), primary_key=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


# -----------------------------
# Reservations
# -----------------------------
class ReservationModel(Base):
    __tablename__ = "reservations"

    reservation_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    lab_id: Mapped[int] = mapped_column(ForeignKey("labs.lab_id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.user_id"), nullable=False, index=True)
    start_time: Mapped[datetime] = mapped_column(AwareDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(AwareDateTime, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ReservationStatus] = mapped_column(Enum(ReservationStatus), nullable=False, index=True)
    whole_lab: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_group_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)

    workstation_links = relationship(
        "ReservationWorkstationModel",
        back_populates="reservation",
        cascade="all, delete-orphan",
        order_by="ReservationWorkstationModel.workstation_id",
    )


class ReservationWorkstationModel(Base):
    __tablename__ = "reservation_workstations"

    reservation_id: Mapped[str] = mapped_column(ForeignKey("reservations.reservation_id"), primary_key=True)
    workstation_id: Mapped[int] = mapped_column(ForeignKey("workstations.workstation_id"), primary_key=True)

    reservation = relationship("ReservationModel", back_populates="workstation_links")


class ReservationEditProposalModel(Base):
    __tablename__ = "reservation_edit_proposals"
    __table_args__ = (
        # At most one unresolved proposal per reservation
        Index(
            "uq_reservation_edit_proposals_pending",
            "reservation_id",
            unique=True,
            sqlite_where=text("resolution = 'PENDING'"),
            postgresql_where=text("resolution = 'PENDING'"),
        ),
    )

    proposal_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reservation_id: Mapped[str] = mapped_column(ForeignKey("reservations.reservation_id"), nullable=False, index=True)
    edited_by: Mapped[int] = mapped_column(ForeignKey("users.user_id"), nullable=False)
    original_status: Mapped[ReservationStatus] = mapped_column(Enum(ReservationStatus), nullable=False)

    original_start_time: Mapped[datetime] = mapped_column(AwareDateTime, nullable=False)
    original_end_time: Mapped[datetime] = mapped_column(AwareDateTime, nullable=False)
    original_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_whole_lab: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    original_workstation_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    proposed_start_time: Mapped[datetime] = mapped_column(AwareDateTime, nullable=False)
    proposed_end_time: Mapped[datetime] = mapped_column(AwareDateTime, nullable=False)
    proposed_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    proposed_whole_lab: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    proposed_workstation_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    resolution: Mapped[ResolutionStatus] = mapped_column(Enum(ResolutionStatus), nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    resolved_by: Mapped[int | None] = mapped_column(ForeignKey("users.user_id"), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(AwareDateTime, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class RecurringPatternModel(Base):
    __tablename__ = "recurring_patterns"

    recurring_group_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    pattern_type: Mapped[RecurrenceType] = mapped_column(Enum(RecurrenceType), nullable=False)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    occurrences: Mapped[int | None] = mapped_column(Integer, nullable=True)
