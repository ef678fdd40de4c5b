from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    INVALID_STATE = "INVALID_STATE"
    INVALID_INPUT = "INVALID_INPUT"
    VALIDATION_FAILED = "VALIDATION_FAILED"


class BookingError(Exception):
    """
    Base class of every error raised by the booking core.

    `kind` groups errors for the boundary layer, `code` is the stable machine-readable identifier.
    """

    kind: ErrorKind = ErrorKind.INVALID_STATE
    code: str = "BOOKING_ERROR"
    default_message: str = "Booking operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


# -----------------------------
# Not found
# -----------------------------
class NotFoundError(BookingError):
    kind = ErrorKind.NOT_FOUND
    code = "BOOKING_NOT_FOUND"
    default_message = "Resource not found"


class ReservationNotFoundError(NotFoundError):
    code = "BOOKING_RESERVATION_NOT_FOUND"
    default_message = "Reservation not found"


class LabNotFoundError(NotFoundError):
    code = "BOOKING_LAB_NOT_FOUND"
    default_message = "Lab not found"


class WorkstationNotFoundError(NotFoundError):
    code = "BOOKING_WORKSTATION_NOT_FOUND"
    default_message = "Workstation not found"


class EditProposalNotFoundError(NotFoundError):
    code = "BOOKING_EDIT_PROPOSAL_NOT_FOUND"
    default_message = "No active edit proposal found"


# -----------------------------
# Authorization
# -----------------------------
class NotAuthorizedError(BookingError):
    kind = ErrorKind.NOT_AUTHORIZED
    code = "BOOKING_NOT_AUTHORIZED"
    default_message = "You are not authorized to perform this action"


# -----------------------------
# State preconditions
# -----------------------------
class InvalidStateError(BookingError):
    kind = ErrorKind.INVALID_STATE
    code = "BOOKING_INVALID_STATE"
    default_message = "Operation not allowed in the current state"


class AlreadyHasPendingProposalError(InvalidStateError):
    code = "BOOKING_EDIT_PROPOSAL_PENDING"
    default_message = "Reservation already has a pending edit proposal"


class EditAlreadyResolvedError(InvalidStateError):
    code = "BOOKING_EDIT_ALREADY_RESOLVED"
    default_message = "Edit proposal has already been resolved"


# -----------------------------
# Malformed input
# -----------------------------
class InvalidInputError(BookingError):
    kind = ErrorKind.INVALID_INPUT
    code = "BOOKING_INVALID_INPUT"
    default_message = "Invalid input"


class InvalidReservationTimeError(InvalidInputError):
    code = "BOOKING_INVALID_TIME_RANGE"
    default_message = "Invalid reservation time"


class InvalidRecurringPatternError(InvalidInputError):
    code = "BOOKING_INVALID_RECURRING_PATTERN"
    default_message = "Invalid recurring pattern"


class NoValidOccurrencesError(InvalidInputError):
    code = "BOOKING_NO_VALID_OCCURRENCES"
    default_message = "No valid occurrence dates could be generated"


# -----------------------------
# Catalog rule violations
# -----------------------------
class ValidationFailedError(BookingError):
    kind = ErrorKind.VALIDATION_FAILED
    code = "BOOKING_VALIDATION_FAILED"
    default_message = "Reservation validation failed"


class OutsideOperatingHoursError(ValidationFailedError):
    code = "BOOKING_OUTSIDE_OPERATING_HOURS"
    default_message = "Reservation time must be within operating hours"


class LabClosedError(ValidationFailedError):
    code = "BOOKING_LAB_CLOSED"
    default_message = "Lab is closed"


class NoWorkstationsSelectedError(ValidationFailedError):
    code = "BOOKING_NO_WORKSTATIONS_SELECTED"
    default_message = "At least one workstation must be selected when not reserving the whole lab"


class WorkstationNotInLabError(ValidationFailedError):
    code = "BOOKING_WORKSTATION_NOT_IN_LAB"
    default_message = "Workstation does not belong to the requested lab"


class WorkstationInactiveError(ValidationFailedError):
    code = "BOOKING_WORKSTATION_INACTIVE"
    default_message = "Workstation is inactive"
