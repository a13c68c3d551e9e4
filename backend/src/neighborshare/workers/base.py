"""Base utilities for matching background tasks.

Task Signature Pattern:
======================

Every matching task takes JSON-serializable arguments (UUIDs as strings),
opens its own session, and delegates to a plain process_* function that
tests can call with an in-memory session:

@celery_app.task(base=MatchingTask, bind=True, name="matching.something")
def something_task(self, listing_id: str, community_id: str) -> Dict[str, Any]:
    session = open_worker_session()
    try:
        return process_something(session, listing_id, community_id)
    finally:
        session.close()

Retry policy:
============

- Transient store errors (connection drops, failovers) are retried with
  exponential backoff and jitter via autoretry_for
- Stale-state and conflict outcomes are normal results, acknowledged
- Malformed payloads are logged and acknowledged, never retried
"""

from typing import Optional
from uuid import UUID

from celery import Task
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from ..config import EngineConfig, get_settings
from ..database import SessionLocal, get_engine
from ..engine import MatchingEngine
from ..infrastructure.notifications import CeleryNotificationDispatcher
from ..integrations.ports import NotificationDispatcherPort
from ..observability.correlation import work_item_context
from .celery_app import celery_app

TRANSIENT_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


class MalformedWorkItemError(ValueError):
    """Work item payload cannot be interpreted (bad UUID, unknown kind)."""
    pass


class MatchingTask(Task):
    """Base task class for matching work items.

    Retry policy:
    - Max retries: 5
    - Backoff: Exponential with jitter, capped at 10 minutes
    - Retry on: OperationalError, InterfaceError, DisconnectionError
    - No retry on: everything else (stale/conflict outcomes return normally)
    """
    autoretry_for = TRANSIENT_ERRORS
    retry_kwargs = {'max_retries': 5}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes max
    retry_jitter = True

    def __call__(self, *args, **kwargs):
        """Bind the Celery task id as the work-item id for log correlation."""
        with work_item_context(self.request.id):
            return super().__call__(*args, **kwargs)


def parse_uuid(value, field: str) -> UUID:
    """Parse a UUID from a task payload.

    Raises:
        MalformedWorkItemError: If value is not a valid UUID
    """
    try:
        return UUID(str(value))
    except (ValueError, AttributeError, TypeError) as e:
        raise MalformedWorkItemError(f"Invalid {field} '{value}': {str(e)}")


def open_worker_session() -> Session:
    """Create a session for one work item. The caller closes it."""
    get_engine()
    return SessionLocal()


def build_matching_engine(
    session: Session,
    config: Optional[EngineConfig] = None,
    notifications: Optional[NotificationDispatcherPort] = None,
) -> MatchingEngine:
    """Build a MatchingEngine for one work item.

    Args:
        session: Session owned by the task
        config: Engine configuration (default: from settings)
        notifications: Dispatcher (default: Celery notifications queue)
    """
    return MatchingEngine(
        session,
        config or EngineConfig.from_settings(get_settings()),
        notifications=notifications or CeleryNotificationDispatcher(celery_app),
    )
