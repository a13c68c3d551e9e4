"""Match lifecycle: creation and closure with their side effects.

Creation and closure are each one database transaction. Everything that
must agree (match row, listing claims, channel row, ledger entries, pair
history) commits together; chat channel closure and notifications run
after the commit and never undo a committed transition.

Concurrency is handled by the store, not by locks held in this process:
- (offer_id, need_id) unique constraint: one match per pair
- active -> matched conditional updates: one match per listing
- active -> terminal conditional update on the match: one closure winner
- (source_type, source_id, user_id) unique constraint: one award per event
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..antiabuse.pair_history import PairHistoryGuard
from ..config import REWARD_SOURCE_MATCH_GIVER, REWARD_SOURCE_MATCH_RECEIVER
from ..domain.listings import (
    ActorRole,
    ClosureType,
    MatchStatus,
    MatchStrategy,
    CLOSURE_TARGETS,
    PRIVILEGED_ROLES,
    can_transition,
)
from ..integrations.ports import (
    ConversationChannelPort,
    ListingDirectoryPort,
    NotificationDispatcherPort,
)
from ..ledger.rules import RewardRuleTable
from ..ledger.service import RewardLedger
from ..matching.errors import (
    InvalidClosureTypeError,
    MatchAlreadyClosedError,
    MatchNotFoundError,
    NotParticipantError,
    StaleListingError,
)
from ..matching.scorer import ScoreResult
from ..models import Match, utcnow
from ..observability.metrics import (
    match_closures_total,
    match_score_histogram,
    matches_created_total,
    pair_repetition_flags_total,
    side_effect_failures_total,
)

logger = logging.getLogger(__name__)

REWARD_CATEGORY = "sharing"

CLOSURE_MESSAGES = {
    ClosureType.SUCCESSFUL: "The exchange has been completed successfully!",
    ClosureType.CANCELLED: "The match has been cancelled.",
    ClosureType.DISPUTED: "The match has been reported and is under review.",
}


@dataclass
class MatchCreation:
    """Result of create_match.

    Attributes:
        match: The match for the (offer, need) pair
        created: False if the pair was already matched before this call
    """
    match: Match
    created: bool


@dataclass
class ClosureResult:
    """Result of a closure request."""
    match_id: UUID
    status: str
    closure_type: str
    reward_issued: bool
    reward_amount: int
    pair_flagged: bool = False


class MatchLifecycleManager:
    """Create matches and apply closure transitions."""

    def __init__(
        self,
        db: Session,
        listings: ListingDirectoryPort,
        channels: ConversationChannelPort,
        notifications: NotificationDispatcherPort,
        ledger: RewardLedger,
        rules: RewardRuleTable,
        pair_guard: PairHistoryGuard,
    ):
        self.db = db
        self.listings = listings
        self.channels = channels
        self.notifications = notifications
        self.ledger = ledger
        self.rules = rules
        self.pair_guard = pair_guard

    def create_match(self, offer: Any, need: Any, result: ScoreResult, strategy) -> MatchCreation:
        """Create a match and claim both listings in one transaction.

        Args:
            offer: Offer being matched
            need: Need being matched
            result: Score of the pair
            strategy: MatchStrategy that chose the pair

        Returns:
            MatchCreation with the new (or pre-existing) match

        Raises:
            StaleListingError: If either listing was claimed concurrently
        """
        strategy = MatchStrategy(strategy)

        existing = self.get_match_for_pair(offer.id, need.id)
        if existing is not None:
            return MatchCreation(match=existing, created=False)

        match = Match(
            id=uuid.uuid4(),
            community_id=offer.community_id,
            offer_id=offer.id,
            need_id=need.id,
            offer_owner_id=offer.owner_id,
            need_owner_id=need.owner_id,
            score=result.score,
            reasons=list(result.reasons),
            strategy=strategy.value,
            status=MatchStatus.ACTIVE.value,
        )

        try:
            with self.db.begin_nested():
                self.db.add(match)
                self.db.flush()
                if not self.listings.claim_offer(offer.id):
                    raise StaleListingError("offer", offer.id)
                if not self.listings.claim_need(need.id):
                    raise StaleListingError("need", need.id)
                match.channel_id = self.channels.open(match.id, offer.owner_id, need.owner_id)
        except IntegrityError:
            existing = self.get_match_for_pair(offer.id, need.id)
            if existing is None:
                raise
            return MatchCreation(match=existing, created=False)

        self.db.commit()

        matches_created_total.labels(strategy=strategy.value).inc()
        match_score_histogram.observe(result.score)
        logger.info(
            f"Created {strategy.value} match {match.id} with score {result.score:.3f}",
            extra={"match_id": match.id, "community_id": match.community_id},
        )

        data = {"match_id": match.id}
        self._notify(
            offer.owner_id,
            "match_created",
            "New match!",
            f'Your offer "{offer.title}" has been matched with a neighbor in need.',
            data,
        )
        self._notify(
            need.owner_id,
            "match_created",
            "New match!",
            "An offer has been matched with your need.",
            data,
        )
        return MatchCreation(match=match, created=True)

    def request_closure(
        self,
        match_id: UUID,
        requesting_user_id: UUID,
        closure_type,
        reason: Optional[str] = None,
        actor_role=ActorRole.MEMBER,
    ) -> ClosureResult:
        """Close a match as successful, cancelled or disputed.

        Args:
            match_id: Match to close
            requesting_user_id: Member (or moderator) asking for the closure
            closure_type: ClosureType value
            reason: Free-text reason (dispute description, cancellation note)
            actor_role: Role of the requester; moderators and admins may
                close matches they do not participate in

        Returns:
            ClosureResult

        Raises:
            InvalidClosureTypeError: Unknown closure type
            MatchNotFoundError: Match does not exist
            NotParticipantError: Requester may not close this match
            MatchAlreadyClosedError: Match is not active (or lost a race)
        """
        try:
            closure = ClosureType(closure_type)
        except ValueError:
            raise InvalidClosureTypeError(closure_type)
        role = ActorRole(actor_role)

        match = self.get_match(match_id)
        if match is None:
            raise MatchNotFoundError(match_id)

        is_participant = match.is_participant(requesting_user_id)
        if not is_participant and role not in PRIVILEGED_ROLES:
            raise NotParticipantError(match_id, requesting_user_id)

        target = CLOSURE_TARGETS[closure]
        if not can_transition(MatchStatus(match.status), target):
            raise MatchAlreadyClosedError(match_id, match.status)

        offer_owner_id, need_owner_id = match.participants()
        community_id = match.community_id
        channel_id = match.channel_id

        reward_issued = False
        reward_amount = 0
        pair_flagged = False

        try:
            giver_amount = receiver_amount = 0
            if closure == ClosureType.SUCCESSFUL:
                giver_amount = self.rules.lookup(REWARD_SOURCE_MATCH_GIVER)
                receiver_amount = self.rules.lookup(REWARD_SOURCE_MATCH_RECEIVER)
                reward_amount = giver_amount + receiver_amount

            closed_at = utcnow()
            statement = (
                update(Match)
                .where(and_(Match.id == match_id, Match.status == MatchStatus.ACTIVE.value))
                .values(
                    status=target.value,
                    closed_by=requesting_user_id,
                    closed_at=closed_at,
                    closure_type=closure.value,
                    closure_reason=reason,
                    reward_amount=reward_amount,
                    updated_at=closed_at,
                )
                .execution_options(synchronize_session=False)
            )
            if self.db.execute(statement).rowcount != 1:
                self.db.rollback()
                current = self.get_match(match_id)
                raise MatchAlreadyClosedError(match_id, current.status if current else "gone")

            if closure == ClosureType.SUCCESSFUL:
                giver = self.ledger.award(
                    offer_owner_id,
                    REWARD_SOURCE_MATCH_GIVER,
                    match_id,
                    giver_amount,
                    community_id=community_id,
                    category=REWARD_CATEGORY,
                    description="Reward for successfully giving",
                )
                receiver = self.ledger.award(
                    need_owner_id,
                    REWARD_SOURCE_MATCH_RECEIVER,
                    match_id,
                    receiver_amount,
                    community_id=community_id,
                    category=REWARD_CATEGORY,
                    description="Reward for completing pickup",
                )
                reward_issued = giver.created or receiver.created
                self.pair_guard.record(match_id, offer_owner_id, need_owner_id, True, closed_at=closed_at)
                pair_flagged = self._check_repetition(match_id, offer_owner_id, need_owner_id)

            elif closure == ClosureType.CANCELLED:
                self.listings.reopen_offer(match.offer_id)
                self.listings.reopen_need(match.need_id)

            elif closure == ClosureType.DISPUTED:
                self.pair_guard.record(match_id, offer_owner_id, need_owner_id, False, closed_at=closed_at)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        match_closures_total.labels(closure_type=closure.value).inc()
        logger.info(
            f"Match {match_id} closed as {closure.value} by {role.value}",
            extra={"match_id": match_id, "user_id": requesting_user_id, "community_id": community_id},
        )

        if channel_id:
            self._close_channel(match_id, channel_id)

        if is_participant:
            recipients = [match.other_participant(requesting_user_id)]
        else:
            recipients = [offer_owner_id, need_owner_id]
        for recipient in recipients:
            self._notify(
                recipient,
                "match_closed",
                "Match closed",
                CLOSURE_MESSAGES[closure],
                {"match_id": match_id, "closure_type": closure.value},
            )

        return ClosureResult(
            match_id=match_id,
            status=target.value,
            closure_type=closure.value,
            reward_issued=reward_issued,
            reward_amount=reward_amount,
            pair_flagged=pair_flagged,
        )

    def get_match(self, match_id: UUID) -> Optional[Match]:
        query = select(Match).where(Match.id == match_id).execution_options(populate_existing=True)
        return self.db.execute(query).scalar_one_or_none()

    def get_match_for_pair(self, offer_id: UUID, need_id: UUID) -> Optional[Match]:
        query = select(Match).where(and_(Match.offer_id == offer_id, Match.need_id == need_id))
        return self.db.execute(query).scalar_one_or_none()

    def _check_repetition(self, match_id: UUID, user_a: UUID, user_b: UUID) -> bool:
        repetition = self.pair_guard.check(user_a, user_b)
        if repetition.flagged:
            pair_repetition_flags_total.inc()
            logger.warning(
                f"Pair repetition threshold reached: {repetition.count} closed matches "
                f"in {self.pair_guard.window_days} days",
                extra={"match_id": match_id},
            )
        return repetition.flagged

    def _close_channel(self, match_id: UUID, channel_id: str) -> None:
        try:
            self.channels.close(channel_id)
        except Exception:
            # The adapter may have left the shared session mid-transaction
            self.db.rollback()
            side_effect_failures_total.labels(effect="channel_close").inc()
            logger.exception(
                f"Failed to close conversation channel {channel_id}",
                extra={"match_id": match_id},
            )

    def _notify(self, user_id: UUID, kind: str, title: str, body: str, data: Dict[str, Any]) -> None:
        try:
            self.notifications.send(user_id, kind, title, body, data)
        except Exception:
            side_effect_failures_total.labels(effect="notification").inc()
            logger.exception(f"Failed to send {kind} notification", extra={"user_id": user_id})
