"""Background workers module for the matching queue.

All matching tasks:
1. Take JSON-serializable arguments (UUIDs as strings)
2. Open their own session per work item
3. Retry only transient store errors
4. Rely on store-level idempotency, never in-process locks
"""

from .celery_app import celery_app
from .base import MatchingTask, TRANSIENT_ERRORS, build_matching_engine

__all__ = [
    "celery_app",
    "MatchingTask",
    "TRANSIENT_ERRORS",
    "build_matching_engine",
]
