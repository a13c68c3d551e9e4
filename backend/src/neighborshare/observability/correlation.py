"""Work-item id management for log correlation.

Every queue message a worker consumes is one work item. The id is taken
from the Celery task id where available and propagated to every log line
emitted while the item is processed.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Context variable for work_item_id
work_item_id_var: ContextVar[Optional[str]] = ContextVar("work_item_id", default=None)


def generate_work_item_id() -> str:
    """Generate a new unique work-item ID.

    Returns:
        str: UUID v4 work-item ID
    """
    return str(uuid.uuid4())


def get_work_item_id() -> str:
    """Get current work-item ID from context.

    Returns:
        str: Current work-item ID or "no-work-item" if not set
    """
    return work_item_id_var.get() or "no-work-item"


def set_work_item_id(work_item_id: Optional[str]) -> None:
    work_item_id_var.set(work_item_id)


@contextmanager
def work_item_context(work_item_id: Optional[str] = None) -> Iterator[str]:
    """Bind a work-item id for the duration of the block.

    Args:
        work_item_id: Id to bind; a fresh one is generated when omitted

    Yields:
        str: The bound work-item id
    """
    bound = work_item_id or generate_work_item_id()
    token = work_item_id_var.set(bound)
    try:
        yield bound
    finally:
        work_item_id_var.reset(token)
