from __future__ import annotations

import logging

from labbooking.core.notifications.notification_sink import Notification, NotificationSink

logger = logging.getLogger(__name__)


class LoggingNotificationSink(NotificationSink):
    """Default sink: writes each notification to the application log."""

    def send(self, notification: Notification) -> None:
        logger.info(
            "Notification %s to %s <%s> for lab %s (reservation %s, actor %s, reason %s)",
            notification.type.value,
            notification.recipient_name,
            notification.recipient_email,
            notification.lab_name,
            notification.reservation_id,
            notification.actor_name,
            notification.reason,
        )
