from .celery_dispatcher import CeleryNotificationDispatcher, NOTIFICATION_TASK_NAME

__all__ = ["CeleryNotificationDispatcher", "NOTIFICATION_TASK_NAME"]
