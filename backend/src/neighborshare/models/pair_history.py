"""Pair history SQLAlchemy model."""

import uuid

from sqlalchemy import Column, Boolean, TIMESTAMP, Uuid, Index, CheckConstraint, UniqueConstraint

from .base import Base, utcnow


class PairHistory(Base):
    """Closed-match fact for two participants, keyed by the unordered pair.

    user_low_id / user_high_id hold the two member ids in normalized
    (sorted) order so (A, B) and (B, A) land on the same key.
    One row per match; rows are never updated.
    """
    __tablename__ = "pair_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_low_id = Column(Uuid, nullable=False)
    user_high_id = Column(Uuid, nullable=False)
    match_id = Column(Uuid, nullable=False)
    closed_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    was_successful = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("match_id", name="uq_pair_history_match"),
        CheckConstraint("user_low_id <> user_high_id", name="ck_pair_history_distinct_users"),
        Index("idx_pair_history_pair_closed", "user_low_id", "user_high_id", "closed_at"),
    )
