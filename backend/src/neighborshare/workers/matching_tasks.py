"""Matching queue tasks.

Tasks:
- matching.match_listing: candidate matching for one newly created listing
- matching.run_sweep: greedy sweep of one community
- matching.dispatch_sweeps: Celery Beat entry point, fans out run_sweep
  per community with active listings
"""

import logging
from typing import Any, Callable, Dict, Optional

from celery import Task
from sqlalchemy.orm import Session

from ..config import EngineConfig
from ..domain.listings import ListingKind
from ..integrations.ports import NotificationDispatcherPort
from ..models import Offer, Need
from ..observability.metrics import work_items_total
from .base import (
    MalformedWorkItemError,
    MatchingTask,
    build_matching_engine,
    open_worker_session,
    parse_uuid,
)
from .celery_app import celery_app

logger = logging.getLogger(__name__)


def process_match_listing(
    session: Session,
    kind: str,
    listing_id: str,
    community_id: str,
    config: Optional[EngineConfig] = None,
    notifications: Optional[NotificationDispatcherPort] = None,
) -> Dict[str, Any]:
    """Run candidate matching for one listing-created work item.

    Args:
        session: Database session
        kind: "offer" or "need"
        listing_id: Listing UUID string
        community_id: Community UUID string
        config: Engine configuration override
        notifications: Dispatcher override

    Returns:
        Dict with status (matched, duplicate, stale, no_candidate, malformed),
        match_id and score
    """
    try:
        listing_kind = ListingKind(kind)
    except ValueError:
        return _malformed("match_listing", f"Unknown listing kind '{kind}'")
    try:
        listing_uuid = parse_uuid(listing_id, "listing_id")
        community_uuid = parse_uuid(community_id, "community_id")
    except MalformedWorkItemError as e:
        return _malformed("match_listing", str(e))

    engine = build_matching_engine(session, config=config, notifications=notifications)
    outcome = engine.match_listing(listing_kind, listing_uuid, community_uuid)

    work_items_total.labels(task="match_listing", outcome=outcome.status).inc()
    logger.info(
        f"Candidate matching for {listing_kind.value} {listing_id}: {outcome.status}",
        extra={"community_id": community_uuid, "listing_id": listing_uuid},
    )
    return {
        "status": outcome.status,
        "match_id": str(outcome.match_id) if outcome.match_id else None,
        "score": outcome.score,
    }


def process_run_sweep(
    session: Session,
    community_id: str,
    config: Optional[EngineConfig] = None,
    notifications: Optional[NotificationDispatcherPort] = None,
) -> Dict[str, Any]:
    """Sweep one community.

    Returns:
        Dict with status and the sweep report
    """
    try:
        community_uuid = parse_uuid(community_id, "community_id")
    except MalformedWorkItemError as e:
        return _malformed("run_sweep", str(e))

    engine = build_matching_engine(session, config=config, notifications=notifications)
    report = engine.run_sweep(community_uuid)

    work_items_total.labels(task="run_sweep", outcome="completed").inc()
    result = report.to_dict()
    result["status"] = "completed"
    return result


def process_dispatch_sweeps(
    session: Session,
    enqueue: Callable[[str], Any],
    config: Optional[EngineConfig] = None,
    notifications: Optional[NotificationDispatcherPort] = None,
) -> Dict[str, Any]:
    """Enqueue one sweep per community with at least one active offer and need.

    Args:
        session: Database session
        enqueue: Called with each community id string
    """
    engine = build_matching_engine(session, config=config, notifications=notifications)
    communities = engine.communities_to_sweep()
    for community_id in communities:
        enqueue(str(community_id))

    work_items_total.labels(task="dispatch_sweeps", outcome="completed").inc()
    logger.info(f"Dispatched {len(communities)} community sweeps")
    return {"status": "completed", "dispatched": len(communities)}


def _malformed(task: str, error: str) -> Dict[str, Any]:
    work_items_total.labels(task=task, outcome="malformed").inc()
    logger.warning(f"Dropping malformed {task} work item: {error}")
    return {"status": "malformed", "error": error}


@celery_app.task(base=MatchingTask, bind=True, name="matching.match_listing")
def match_listing_task(self: Task, kind: str, listing_id: str, community_id: str) -> Dict[str, Any]:
    """Candidate matching for a newly created offer or need.

    Idempotent: a redelivered work item finds the listing already matched
    (stale) or the pair already matched (duplicate).

    Example:
        >>> match_listing_task.delay(
        ...     kind="offer",
        ...     listing_id=str(offer.id),
        ...     community_id=str(offer.community_id)
        ... )
    """
    session = open_worker_session()
    try:
        return process_match_listing(session, kind, listing_id, community_id)
    finally:
        session.close()


@celery_app.task(base=MatchingTask, bind=True, name="matching.run_sweep")
def run_sweep_task(self: Task, community_id: str) -> Dict[str, Any]:
    """Greedy sweep of one community."""
    session = open_worker_session()
    try:
        return process_run_sweep(session, community_id)
    finally:
        session.close()


@celery_app.task(base=MatchingTask, bind=True, name="matching.dispatch_sweeps")
def dispatch_sweeps_task(self: Task) -> Dict[str, Any]:
    """Fan out community sweeps. Scheduled by Celery Beat."""
    session = open_worker_session()
    try:
        return process_dispatch_sweeps(
            session,
            lambda community_id: run_sweep_task.delay(community_id=community_id),
        )
    finally:
        session.close()


def enqueue_listing_match(listing: Any) -> str:
    """Enqueue candidate matching for a committed offer or need.

    Called by the listing creation API after its transaction commits.

    Args:
        listing: Offer or Need instance

    Returns:
        str: Celery task id

    Raises:
        TypeError: If listing is neither an Offer nor a Need
    """
    if isinstance(listing, Offer):
        kind = ListingKind.OFFER
    elif isinstance(listing, Need):
        kind = ListingKind.NEED
    else:
        raise TypeError(f"Cannot enqueue matching for {type(listing).__name__}")

    result = match_listing_task.delay(
        kind=kind.value,
        listing_id=str(listing.id),
        community_id=str(listing.community_id),
    )
    return result.id
