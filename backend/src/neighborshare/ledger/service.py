"""Append-only reward ledger.

Idempotency comes from the (source_type, source_id, user_id) unique
constraint: an award is inserted inside a savepoint and a uniqueness
violation resolves to the entry that already exists.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..domain.listings import LedgerEntryStatus
from ..models import RewardLedgerEntry
from ..observability.metrics import rewards_issued_total, reward_points_issued_total

logger = logging.getLogger(__name__)


@dataclass
class AwardResult:
    """Outcome of an award call.

    Attributes:
        entry: The ledger entry for (source_type, source_id, user_id)
        created: False if the entry already existed
    """
    entry: RewardLedgerEntry
    created: bool


class RewardLedger:
    """Reward ledger operations.

    Entries are never updated or deleted here. Voiding is a moderation
    workflow that only flips status on existing rows.
    """

    def __init__(self, db: Session):
        self.db = db

    def award(
        self,
        user_id: UUID,
        source_type: str,
        source_id,
        amount: int,
        community_id: Optional[UUID] = None,
        category: str = "sharing",
        description: Optional[str] = None,
        created_by: str = "system",
    ) -> AwardResult:
        """Append a reward entry unless one exists for this event and user.

        Runs in the caller's transaction; the caller commits.

        Args:
            user_id: Member receiving the reward
            source_type: Event type (e.g. match_closed_giver)
            source_id: Event id (e.g. match id)
            amount: Signed amount
            community_id: Community the event happened in
            category: Reporting category
            description: Human-readable description
            created_by: Actor recorded on the entry

        Returns:
            AwardResult with the entry and whether this call created it
        """
        source_key = str(source_id)
        existing = self._find(source_type, source_key, user_id)
        if existing is not None:
            return AwardResult(entry=existing, created=False)

        entry = RewardLedgerEntry(
            user_id=user_id,
            community_id=community_id,
            source_type=source_type,
            source_id=source_key,
            amount=amount,
            category=category,
            description=description,
            status=LedgerEntryStatus.VALID.value,
            created_by=created_by,
        )
        try:
            with self.db.begin_nested():
                self.db.add(entry)
        except IntegrityError:
            existing = self._find(source_type, source_key, user_id)
            if existing is None:
                raise
            logger.info(
                f"Reward {source_type}/{source_key} already issued",
                extra={"user_id": user_id},
            )
            return AwardResult(entry=existing, created=False)

        rewards_issued_total.labels(source_type=source_type).inc()
        reward_points_issued_total.labels(source_type=source_type).inc(max(amount, 0))
        logger.info(
            f"Issued {amount} for {source_type}/{source_key}",
            extra={"user_id": user_id, "community_id": community_id},
        )
        return AwardResult(entry=entry, created=True)

    def balance(self, user_id: UUID) -> int:
        """Sum of the user's valid ledger entries."""
        query = select(func.coalesce(func.sum(RewardLedgerEntry.amount), 0)).where(
            and_(
                RewardLedgerEntry.user_id == user_id,
                RewardLedgerEntry.status == LedgerEntryStatus.VALID.value,
            )
        )
        return int(self.db.execute(query).scalar_one())

    def entries_for_user(
        self,
        user_id: UUID,
        limit: int = 50,
        before: Optional[datetime] = None,
    ) -> List[RewardLedgerEntry]:
        """List valid entries newest first.

        Args:
            user_id: Member whose history to list
            limit: Page size
            before: Only entries created strictly before this timestamp

        Returns:
            List of RewardLedgerEntry
        """
        query = select(RewardLedgerEntry).where(
            and_(
                RewardLedgerEntry.user_id == user_id,
                RewardLedgerEntry.status == LedgerEntryStatus.VALID.value,
            )
        )
        if before is not None:
            query = query.where(RewardLedgerEntry.created_at < before)
        query = query.order_by(RewardLedgerEntry.created_at.desc(), RewardLedgerEntry.id.desc()).limit(limit)
        return list(self.db.execute(query).scalars().all())

    def entries_for_source(self, source_type: str, source_id) -> List[RewardLedgerEntry]:
        query = select(RewardLedgerEntry).where(
            and_(
                RewardLedgerEntry.source_type == source_type,
                RewardLedgerEntry.source_id == str(source_id),
            )
        )
        return list(self.db.execute(query).scalars().all())

    def _find(self, source_type: str, source_id: str, user_id: UUID) -> Optional[RewardLedgerEntry]:
        query = select(RewardLedgerEntry).where(
            and_(
                RewardLedgerEntry.source_type == source_type,
                RewardLedgerEntry.source_id == source_id,
                RewardLedgerEntry.user_id == user_id,
            )
        )
        return self.db.execute(query).scalar_one_or_none()
