"""Reward ledger and reward rule SQLAlchemy models."""

import uuid

from sqlalchemy import (
    Column, Text, Integer, Boolean, TIMESTAMP, Uuid,
    Index, CheckConstraint, UniqueConstraint,
)

from .base import Base, utcnow


class RewardLedgerEntry(Base):
    """Append-only reward fact.

    Entries are never deleted. Moderation voids an entry by flipping status
    and filling the voided_* columns, which keeps the audit trail intact.

    The (source_type, source_id, user_id) unique constraint is the
    idempotency backbone: retrying an award for the same event cannot pay
    the same user twice.
    """
    __tablename__ = "reward_ledger_entry"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    community_id = Column(Uuid, nullable=True)

    source_type = Column(Text, nullable=False)
    source_id = Column(Text, nullable=False)  # e.g. match id
    amount = Column(Integer, nullable=False)  # Positive for awards, negative for deductions
    category = Column(Text, nullable=False)
    description = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default="valid")
    created_by = Column(Text, nullable=False, default="system")
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    # Moderation (void) audit fields
    voided_at = Column(TIMESTAMP(timezone=True), nullable=True)
    voided_by = Column(Text, nullable=True)
    void_reason = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("source_type", "source_id", "user_id", name="uq_reward_ledger_source_user"),
        CheckConstraint("status IN ('valid', 'void')", name="ck_reward_ledger_status"),
        Index("idx_reward_ledger_user_status", "user_id", "status"),
        Index("idx_reward_ledger_source", "source_type", "source_id"),
    )

    def to_dict(self):
        """Convert ledger entry to dictionary representation."""
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "community_id": str(self.community_id) if self.community_id else None,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "amount": self.amount,
            "category": self.category,
            "description": self.description,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class RewardRule(Base):
    """Configurable reward amount per source type."""
    __tablename__ = "reward_rule"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    source_type = Column(Text, nullable=False, unique=True)
    amount = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
