"""Observability: structured logging, work-item correlation and metrics."""

from .correlation import get_work_item_id, set_work_item_id, work_item_context
from .logging_config import configure_logging, JSONFormatter

__all__ = [
    "get_work_item_id",
    "set_work_item_id",
    "work_item_context",
    "configure_logging",
    "JSONFormatter",
]
