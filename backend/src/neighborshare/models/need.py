"""Need SQLAlchemy model."""

import uuid

from sqlalchemy import Column, Text, TIMESTAMP, Uuid, Index, CheckConstraint

from .base import Base, utcnow


class Need(Base):
    """Demand listing: something a member of the community is asking for.

    Shares the survey shape with Offer so the two can be scored against
    each other. Needs carry an urgency tier but never expire.
    """
    __tablename__ = "need"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, nullable=False)
    community_id = Column(Uuid, nullable=False)

    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    survey_json = Column(Text, nullable=False, default="{}")
    urgency = Column(Text, nullable=False, default="normal")

    status = Column(Text, nullable=False, default="active")

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'matched', 'closed', 'cancelled')",
            name="ck_need_status",
        ),
        CheckConstraint(
            "urgency IN ('low', 'normal', 'high', 'urgent')",
            name="ck_need_urgency",
        ),
        Index("idx_need_community_status", "community_id", "status"),
        Index("idx_need_owner", "owner_id"),
    )

    def __repr__(self):
        return f"<Need(id={self.id}, community_id={self.community_id}, status={self.status})>"
