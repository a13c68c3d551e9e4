"""Celery application for the matching workers.

Work items are acknowledged only after the task returns (acks_late), and a
worker killed mid-task hands its item back to the broker. Together with the
store-level idempotency in the engine this gives at-least-once processing
without duplicate matches or double rewards.

Queues:
- matching: listing-created work items and community sweeps
- notifications: consumed by the external delivery worker
"""

from celery import Celery
from celery.signals import setup_logging

from ..config import get_settings
from ..observability.logging_config import configure_logging

settings = get_settings()

celery_app = Celery(
    "neighborshare",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["neighborshare.workers.matching_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue="matching",
    task_routes={
        "matching.*": {"queue": "matching"},
        "notifications.*": {"queue": "notifications"},
    },
    result_expires=3600,
)

celery_app.conf.beat_schedule = {
    "matching-dispatch-sweeps": {
        "task": "matching.dispatch_sweeps",
        "schedule": settings.SWEEP_INTERVAL_MINUTES * 60.0,
        "options": {
            "expires": settings.SWEEP_INTERVAL_MINUTES * 60,  # Skip if the next run is already due
        },
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    """Route worker and task logging through the JSON formatter."""
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
