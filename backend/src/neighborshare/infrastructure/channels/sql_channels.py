"""Conversation channels persisted in the application database."""

import logging
from uuid import UUID

from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...domain.listings import ChannelStatus
from ...integrations.ports import ConversationChannelPort
from ...models import ConversationChannel, utcnow

logger = logging.getLogger(__name__)


class SqlConversationChannels(ConversationChannelPort):
    """Provision one conversation_channel row per match.

    open() runs inside the caller's transaction so the channel commits (or
    rolls back) together with the match it belongs to.
    """

    def __init__(self, db: Session):
        self.db = db

    def open(self, match_id: UUID, participant_a: UUID, participant_b: UUID) -> str:
        existing = self._find_by_match(match_id)
        if existing is not None:
            return str(existing.id)

        channel = ConversationChannel(
            match_id=match_id,
            participant_a_id=participant_a,
            participant_b_id=participant_b,
            status=ChannelStatus.ACTIVE.value,
        )
        try:
            with self.db.begin_nested():
                self.db.add(channel)
        except IntegrityError:
            # Opened concurrently by a redelivered work item
            existing = self._find_by_match(match_id)
            if existing is None:
                raise
            return str(existing.id)

        logger.info(
            f"Opened conversation channel {channel.id} for match {match_id}",
            extra={"match_id": match_id},
        )
        return str(channel.id)

    def close(self, channel_id: str) -> None:
        statement = (
            update(ConversationChannel)
            .where(
                and_(
                    ConversationChannel.id == UUID(str(channel_id)),
                    ConversationChannel.status == ChannelStatus.ACTIVE.value,
                )
            )
            .values(status=ChannelStatus.CLOSED.value, closed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.execute(statement)
        self.db.commit()

    def _find_by_match(self, match_id: UUID):
        query = select(ConversationChannel).where(ConversationChannel.match_id == match_id)
        return self.db.execute(query).scalar_one_or_none()
