from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from labbooking.core.notifications.notification_sink import Notification, NotificationSink, NotificationType

logger = logging.getLogger(__name__)

SUBJECTS: dict[NotificationType, str] = {
    NotificationType.RESERVATION_SUBMITTED: "Reservation submitted for {lab}",
    NotificationType.NEW_RESERVATION_REQUEST: "New reservation request for {lab}",
    NotificationType.STATUS_CHANGED: "Your reservation for {lab} is now {status}",
    NotificationType.EDIT_PROPOSED_TO_PROFESSOR: "Changes proposed to your reservation for {lab}",
    NotificationType.EDIT_PROPOSED_TO_MANAGER: "Reservation edit awaiting approval for {lab}",
    NotificationType.RESERVATION_UPDATED: "Reservation updated for {lab}",
    NotificationType.EDIT_APPROVED_BY_MANAGER: "Your reservation edit for {lab} was approved",
    NotificationType.EDIT_REJECTED_BY_MANAGER: "Your reservation edit for {lab} was rejected",
    NotificationType.EDIT_APPROVED_BY_PROFESSOR: "Proposed changes for {lab} were accepted",
    NotificationType.EDIT_REJECTED_BY_PROFESSOR: "Proposed changes for {lab} were declined",
}


def render(notification: Notification) -> tuple[str, str]:
    """Plain-text subject and body for `notification`."""
    status = notification.details.get("status", "")
    subject = SUBJECTS[notification.type].format(lab=notification.lab_name, status=str(status).lower())

    lines = [f"Hello {notification.recipient_name},", "", subject + "."]
    if notification.actor_name:
        lines.append(f"By: {notification.actor_name}")
    if notification.reservation_id:
        lines.append(f"Reservation: {notification.reservation_id}")
    for key, value in notification.details.items():
        lines.append(f"{key.replace('_', ' ').capitalize()}: {value}")
    if notification.reason:
        lines.append(f"Reason: {notification.reason}")
    return subject, "\n".join(lines)


class SmtpNotificationSink(NotificationSink):
    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        from_email: str | None = None,
        use_tls: bool = True,
        timeout: float = 10,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from_email = from_email or username
        self._use_tls = use_tls
        self._timeout = timeout

    def send(self, notification: Notification) -> None:
        subject, body = render(notification)

        msg = EmailMessage()
        msg["From"] = self._from_email
        msg["To"] = notification.recipient_email
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._username and self._password:
                server.login(self._username, self._password)
            server.send_message(msg)
        logger.debug("Sent %s email to %s", notification.type.value, notification.recipient_email)
