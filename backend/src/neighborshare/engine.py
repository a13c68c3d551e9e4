"""Matching engine facade.

Wires the scorer, matchers, lifecycle manager, ledger and pair-history
guard around one database session and an explicit EngineConfig. Workers
build one engine per work item.

Exposed operations:
- on_entity_created(entity, community_id): candidate matching for a new listing
- run_sweep(community_id): greedy sweep of one community
- request_closure(match_id, requesting_user_id, closure_type, ...): close a match
"""

from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .antiabuse.pair_history import PairHistoryGuard, PairRepetition
from .config import EngineConfig
from .domain.listings import ActorRole, ListingKind
from .infrastructure.channels import SqlConversationChannels
from .infrastructure.repositories import SqlListingDirectory
from .integrations.ports import (
    ConversationChannelPort,
    ListingDirectoryPort,
    NotificationDispatcherPort,
)
from .ledger.rules import RewardRuleTable
from .ledger.service import RewardLedger
from .lifecycle.service import ClosureResult, MatchLifecycleManager
from .matching.candidate_matcher import CandidateMatcher, CandidateOutcome
from .matching.scorer import CompatibilityScorer
from .matching.sweep_matcher import GreedySweepMatcher, SweepReport
from .models import Offer, Need


class MatchingEngine:
    """Matching and settlement engine for one database session."""

    def __init__(
        self,
        db: Session,
        config: EngineConfig,
        notifications: NotificationDispatcherPort,
        channels: Optional[ConversationChannelPort] = None,
        listings: Optional[ListingDirectoryPort] = None,
    ):
        """Initialize engine.

        Args:
            db: Database session owned by the caller
            config: Thresholds, limits and reward fallbacks
            notifications: Notification dispatcher
            channels: Conversation channel provisioner (default: SQL-backed)
            listings: Listing directory (default: SQL-backed)
        """
        self.db = db
        self.config = config
        self.listings = listings or SqlListingDirectory(db)
        self.channels = channels or SqlConversationChannels(db)
        self.notifications = notifications

        self.scorer = CompatibilityScorer(threshold=config.score_threshold)
        self.ledger = RewardLedger(db)
        self.rules = RewardRuleTable(db, defaults=config.reward_defaults)
        self.pair_guard = PairHistoryGuard(
            db,
            window_days=config.pair_window_days,
            flag_threshold=config.pair_flag_threshold,
        )
        self.lifecycle = MatchLifecycleManager(
            db,
            listings=self.listings,
            channels=self.channels,
            notifications=notifications,
            ledger=self.ledger,
            rules=self.rules,
            pair_guard=self.pair_guard,
        )
        self.candidates = CandidateMatcher(
            self.listings, self.scorer, self.lifecycle, candidate_limit=config.candidate_limit
        )
        self.sweeper = GreedySweepMatcher(
            self.listings, self.scorer, self.lifecycle, candidate_limit=config.candidate_limit
        )

    def on_entity_created(self, entity: Any, community_id: UUID) -> CandidateOutcome:
        """Run candidate matching for a newly committed offer or need.

        Args:
            entity: Offer or Need instance
            community_id: Community the listing belongs to

        Raises:
            TypeError: If entity is neither an Offer nor a Need
        """
        if isinstance(entity, Offer):
            return self.match_listing(ListingKind.OFFER, entity.id, community_id)
        if isinstance(entity, Need):
            return self.match_listing(ListingKind.NEED, entity.id, community_id)
        raise TypeError(f"Cannot match entity of type {type(entity).__name__}")

    def match_listing(self, kind, listing_id: UUID, community_id: UUID) -> CandidateOutcome:
        """Candidate matching by listing reference (queue payloads carry ids, not rows)."""
        if ListingKind(kind) == ListingKind.OFFER:
            return self.candidates.match_offer(listing_id, community_id)
        return self.candidates.match_need(listing_id, community_id)

    def run_sweep(self, community_id: UUID) -> SweepReport:
        return self.sweeper.run(community_id)

    def request_closure(
        self,
        match_id: UUID,
        requesting_user_id: UUID,
        closure_type,
        reason: Optional[str] = None,
        actor_role=ActorRole.MEMBER,
    ) -> ClosureResult:
        return self.lifecycle.request_closure(
            match_id,
            requesting_user_id,
            closure_type,
            reason=reason,
            actor_role=actor_role,
        )

    def communities_to_sweep(self) -> List[UUID]:
        return self.listings.communities_with_active_listings()

    def balance(self, user_id: UUID) -> int:
        return self.ledger.balance(user_id)

    def pair_repetition(self, user_a: UUID, user_b: UUID) -> PairRepetition:
        return self.pair_guard.check(user_a, user_b)
