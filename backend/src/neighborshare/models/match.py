"""Match SQLAlchemy model."""

import uuid

from sqlalchemy import (
    Column, Text, Integer, Float, TIMESTAMP, Uuid, ForeignKey,
    Index, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, utcnow


class Match(Base):
    """Pairing of exactly one Offer with exactly one Need.

    Created only by the matching engine; closed by either participant.
    The (offer_id, need_id) unique constraint is what makes re-delivered
    matching work items harmless.

    Status values:
    - active: Exchange in progress
    - closed: Completed successfully, rewards issued
    - cancelled: Called off, offer and need reopened
    - disputed: Handed to moderation
    """
    __tablename__ = "exchange_match"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    community_id = Column(Uuid, nullable=False)

    offer_id = Column(Uuid, ForeignKey("offer.id", ondelete="CASCADE"), nullable=False)
    need_id = Column(Uuid, ForeignKey("need.id", ondelete="CASCADE"), nullable=False)
    offer_owner_id = Column(Uuid, nullable=False)
    need_owner_id = Column(Uuid, nullable=False)

    score = Column(Float, nullable=False)
    reasons = Column(PortableJSONB, nullable=False, default=list)
    strategy = Column(Text, nullable=False)
    channel_id = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default="active")

    # Closure metadata
    closed_by = Column(Uuid, nullable=True)
    closed_at = Column(TIMESTAMP(timezone=True), nullable=True)
    closure_type = Column(Text, nullable=True)
    closure_reason = Column(Text, nullable=True)
    reward_amount = Column(Integer, nullable=False, default=0)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    offer = relationship("Offer")
    need = relationship("Need")

    __table_args__ = (
        UniqueConstraint("offer_id", "need_id", name="uq_exchange_match_offer_need"),
        CheckConstraint("offer_owner_id <> need_owner_id", name="ck_exchange_match_distinct_owners"),
        CheckConstraint(
            "status IN ('active', 'closed', 'cancelled', 'disputed')",
            name="ck_exchange_match_status",
        ),
        CheckConstraint("score >= 0.0 AND score <= 1.0", name="ck_exchange_match_score"),
        Index("idx_exchange_match_community", "community_id"),
        Index("idx_exchange_match_offer_owner", "offer_owner_id"),
        Index("idx_exchange_match_need_owner", "need_owner_id"),
    )

    def participants(self):
        """Return (offer_owner_id, need_owner_id)."""
        return self.offer_owner_id, self.need_owner_id

    def is_participant(self, user_id) -> bool:
        return user_id in (self.offer_owner_id, self.need_owner_id)

    def other_participant(self, user_id):
        """The participant who is not user_id."""
        return self.need_owner_id if user_id == self.offer_owner_id else self.offer_owner_id

    def to_dict(self):
        """Convert match to dictionary representation."""
        return {
            "id": str(self.id),
            "community_id": str(self.community_id),
            "offer_id": str(self.offer_id),
            "need_id": str(self.need_id),
            "offer_owner_id": str(self.offer_owner_id),
            "need_owner_id": str(self.need_owner_id),
            "score": float(self.score),
            "reasons": list(self.reasons or []),
            "strategy": self.strategy,
            "channel_id": self.channel_id,
            "status": self.status,
            "closed_by": str(self.closed_by) if self.closed_by else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "closure_type": self.closure_type,
            "reward_amount": self.reward_amount,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
