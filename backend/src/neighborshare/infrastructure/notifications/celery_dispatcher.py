"""Notification dispatch through the notification delivery queue.

Delivery (push, in-app inbox) is owned by a separate worker. This adapter
only enqueues the notifications.send task by name, so the engine does not
import the delivery code.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from celery import Celery
from kombu.exceptions import KombuError

from ...integrations.ports import NotificationDispatcherPort, NotificationError

logger = logging.getLogger(__name__)

NOTIFICATION_TASK_NAME = "notifications.send"
NOTIFICATION_QUEUE = "notifications"


class CeleryNotificationDispatcher(NotificationDispatcherPort):
    """Enqueue notifications for the external delivery worker."""

    def __init__(self, app: Celery, queue: str = NOTIFICATION_QUEUE):
        self.app = app
        self.queue = queue

    def send(
        self,
        user_id: UUID,
        kind: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = {
            "user_id": str(user_id),
            "type": kind,
            "title": title,
            "body": body,
            "data": {key: str(value) for key, value in (data or {}).items()},
        }
        try:
            self.app.send_task(NOTIFICATION_TASK_NAME, kwargs=payload, queue=self.queue)
        except KombuError as e:
            raise NotificationError(f"Failed to queue {kind} notification for {user_id}: {e}") from e

        logger.debug(f"Queued {kind} notification", extra={"user_id": user_id})
