"""Pair repetition tracking.

Every successful or disputed match closure leaves one pair_history row for
the two participants. Two members closing matches with each other unusually
often within a rolling window is a collusion signal for moderators; the
flag is advisory and never blocks a closure.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import PairHistory, utcnow

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 7
DEFAULT_FLAG_THRESHOLD = 5


@dataclass
class PairRepetition:
    """Repetition count for a pair within the window."""
    count: int
    flagged: bool


def normalize_pair(user_a: UUID, user_b: UUID) -> Tuple[UUID, UUID]:
    """Order two member ids so (a, b) and (b, a) share one key.

    Raises:
        ValueError: If both ids are the same member
    """
    if user_a == user_b:
        raise ValueError(f"A pair needs two distinct members, got {user_a} twice")
    return (user_a, user_b) if str(user_a) < str(user_b) else (user_b, user_a)


class PairHistoryGuard:
    """Record closed matches per pair and count repetitions."""

    def __init__(
        self,
        db: Session,
        window_days: int = DEFAULT_WINDOW_DAYS,
        flag_threshold: int = DEFAULT_FLAG_THRESHOLD,
    ):
        self.db = db
        self.window_days = window_days
        self.flag_threshold = flag_threshold

    def record(
        self,
        match_id: UUID,
        user_a: UUID,
        user_b: UUID,
        was_successful: bool,
        closed_at: Optional[datetime] = None,
    ) -> PairHistory:
        """Record a closed match for the pair. Idempotent per match_id.

        Runs in the caller's transaction; the caller commits.
        """
        existing = self._find(match_id)
        if existing is not None:
            return existing

        low, high = normalize_pair(user_a, user_b)
        record = PairHistory(
            user_low_id=low,
            user_high_id=high,
            match_id=match_id,
            closed_at=closed_at or utcnow(),
            was_successful=was_successful,
        )
        try:
            with self.db.begin_nested():
                self.db.add(record)
        except IntegrityError:
            existing = self._find(match_id)
            if existing is None:
                raise
            return existing
        return record

    def repetition_count(
        self,
        user_a: UUID,
        user_b: UUID,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Count closed matches between two members within the window.

        Symmetric in user_a and user_b.
        """
        low, high = normalize_pair(user_a, user_b)
        days = self.window_days if window_days is None else window_days
        since = (now or utcnow()) - timedelta(days=days)

        query = select(func.count(PairHistory.id)).where(
            and_(
                PairHistory.user_low_id == low,
                PairHistory.user_high_id == high,
                PairHistory.closed_at > since,
            )
        )
        return int(self.db.execute(query).scalar_one())

    def check(
        self,
        user_a: UUID,
        user_b: UUID,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> PairRepetition:
        count = self.repetition_count(user_a, user_b, window_days=window_days, now=now)
        return PairRepetition(count=count, flagged=count >= self.flag_threshold)

    def _find(self, match_id: UUID) -> Optional[PairHistory]:
        query = select(PairHistory).where(PairHistory.match_id == match_id)
        return self.db.execute(query).scalar_one_or_none()
