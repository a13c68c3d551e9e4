"""Conversation channel SQLAlchemy model."""

import uuid

from sqlalchemy import Column, Text, TIMESTAMP, Uuid, CheckConstraint

from .base import Base, utcnow


class ConversationChannel(Base):
    """Chat thread provisioned for the two participants of a match.

    Only provisioning state lives here; message transport is handled by
    the external chat service. One channel per match.
    """
    __tablename__ = "conversation_channel"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    match_id = Column(Uuid, nullable=False, unique=True)
    participant_a_id = Column(Uuid, nullable=False)
    participant_b_id = Column(Uuid, nullable=False)
    status = Column(Text, nullable=False, default="active")
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    closed_at = Column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'closed')", name="ck_conversation_channel_status"),
    )
