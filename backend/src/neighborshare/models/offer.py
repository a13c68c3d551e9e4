"""Offer SQLAlchemy model."""

import uuid

from sqlalchemy import Column, Text, TIMESTAMP, Uuid, Index, CheckConstraint

from .base import Base, utcnow


class Offer(Base):
    """Supply listing: a member's surplus item offered to the community.

    Status values:
    - draft: Not yet published
    - active: In the matching pool
    - matched: Claimed by exactly one match (engine only)
    - closed: Exchange completed
    - cancelled: Withdrawn by its owner
    - expired: Past expiry_at (set by external housekeeping)

    survey_json holds the raw structured survey as submitted. It is parsed
    leniently at scoring time, so malformed payloads are kept verbatim.
    """
    __tablename__ = "offer"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, nullable=False)
    community_id = Column(Uuid, nullable=False)

    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    survey_json = Column(Text, nullable=False, default="{}")

    status = Column(Text, nullable=False, default="active")
    expiry_at = Column(TIMESTAMP(timezone=True), nullable=False)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'active', 'matched', 'closed', 'cancelled', 'expired')",
            name="ck_offer_status",
        ),
        Index("idx_offer_community_status", "community_id", "status"),
        Index("idx_offer_owner", "owner_id"),
    )

    def __repr__(self):
        return f"<Offer(id={self.id}, community_id={self.community_id}, status={self.status})>"
