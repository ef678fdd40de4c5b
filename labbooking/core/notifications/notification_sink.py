from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID


class NotificationType(str, Enum):
    RESERVATION_SUBMITTED = "RESERVATION_SUBMITTED"
    NEW_RESERVATION_REQUEST = "NEW_RESERVATION_REQUEST"
    STATUS_CHANGED = "STATUS_CHANGED"
    EDIT_PROPOSED_TO_PROFESSOR = "EDIT_PROPOSED_TO_PROFESSOR"
    EDIT_PROPOSED_TO_MANAGER = "EDIT_PROPOSED_TO_MANAGER"
    RESERVATION_UPDATED = "RESERVATION_UPDATED"
    EDIT_APPROVED_BY_MANAGER = "EDIT_APPROVED_BY_MANAGER"
    EDIT_REJECTED_BY_MANAGER = "EDIT_REJECTED_BY_MANAGER"
    EDIT_APPROVED_BY_PROFESSOR = "EDIT_APPROVED_BY_PROFESSOR"
    EDIT_REJECTED_BY_PROFESSOR = "EDIT_REJECTED_BY_PROFESSOR"


@dataclass(frozen=True, slots=True)
class Notification:
    """
    One workflow event addressed to one recipient.

    `actor_name` is the other party (the editor, resolver or requester) where the event has one.
    """

    type: NotificationType
    recipient_email: str
    recipient_name: str
    lab_name: str
    reservation_id: UUID | None = None
    actor_name: str | None = None
    reason: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


class NotificationSink(ABC):
    @abstractmethod
    def send(self, notification: Notification) -> None:
        """Deliver a notification. May raise; callers treat delivery as best-effort."""
        raise NotImplementedError
