"""Immediate matching for a newly created offer or need.

Runs once per listing-created work item and creates at most one match: the
highest-scoring eligible counterpart in the same community. Redelivery of
the same work item is harmless because the listing is no longer active
once matched, and a pre-existing match for the chosen pair is reported as
a duplicate rather than created again.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple
from uuid import UUID

from ..domain.listings import MatchStrategy, NeedStatus, OfferStatus
from ..integrations.ports import ListingDirectoryPort
from ..models import as_utc, utcnow
from ..observability.metrics import match_conflicts_total
from .errors import StaleListingError
from .scorer import CompatibilityScorer, ScoreResult
from .survey import parse_survey

logger = logging.getLogger(__name__)

OUTCOME_MATCHED = "matched"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_STALE = "stale"
OUTCOME_NO_CANDIDATE = "no_candidate"


@dataclass
class CandidateOutcome:
    """Outcome of matching one listing.

    Attributes:
        status: matched, duplicate, stale or no_candidate
        match_id: Created (or pre-existing) match, if any
        score: Score of the chosen pair, if any
    """
    status: str
    match_id: Optional[UUID] = None
    score: Optional[float] = None


class CandidateMatcher:
    """Match a single offer or need against the opposite active set."""

    def __init__(
        self,
        listings: ListingDirectoryPort,
        scorer: CompatibilityScorer,
        lifecycle,
        candidate_limit: Optional[int] = None,
    ):
        self.listings = listings
        self.scorer = scorer
        self.lifecycle = lifecycle
        self.candidate_limit = candidate_limit

    def match_offer(self, offer_id: UUID, community_id: UUID) -> CandidateOutcome:
        offer = self.listings.get_offer(offer_id)
        if not self._is_open(offer, OfferStatus.ACTIVE.value, community_id):
            logger.info(f"Offer {offer_id} no longer matchable, skipping", extra={"community_id": community_id})
            return CandidateOutcome(status=OUTCOME_STALE)
        if offer.expiry_at is not None and as_utc(offer.expiry_at) <= utcnow():
            logger.info(f"Offer {offer_id} expired, skipping", extra={"community_id": community_id})
            return CandidateOutcome(status=OUTCOME_STALE)

        offer_survey = parse_survey(offer.survey_json)
        needs = [
            need for need in self.listings.active_needs(community_id, limit=self.candidate_limit)
            if need.owner_id != offer.owner_id
        ]
        best = self._pick_best(needs, lambda need: self.scorer.score_surveys(offer_survey, parse_survey(need.survey_json)))
        if best is None:
            return CandidateOutcome(status=OUTCOME_NO_CANDIDATE)

        need, result = best
        return self._create(offer, need, result)

    def match_need(self, need_id: UUID, community_id: UUID) -> CandidateOutcome:
        need = self.listings.get_need(need_id)
        if not self._is_open(need, NeedStatus.ACTIVE.value, community_id):
            logger.info(f"Need {need_id} no longer matchable, skipping", extra={"community_id": community_id})
            return CandidateOutcome(status=OUTCOME_STALE)

        need_survey = parse_survey(need.survey_json)
        offers = [
            offer for offer in self.listings.active_offers(community_id, limit=self.candidate_limit)
            if offer.owner_id != need.owner_id
        ]
        best = self._pick_best(offers, lambda offer: self.scorer.score_surveys(parse_survey(offer.survey_json), need_survey))
        if best is None:
            return CandidateOutcome(status=OUTCOME_NO_CANDIDATE)

        offer, result = best
        return self._create(offer, need, result)

    def _is_open(self, listing: Any, active_status: str, community_id: UUID) -> bool:
        return (
            listing is not None
            and listing.status == active_status
            and listing.community_id == community_id
        )

    def _pick_best(
        self,
        candidates: List[Any],
        score: Callable[[Any], ScoreResult],
    ) -> Optional[Tuple[Any, ScoreResult]]:
        """Highest eligible score; ties go to the earliest candidate in fetch order."""
        best = None
        for candidate in candidates:
            result = score(candidate)
            if not self.scorer.is_eligible(result):
                continue
            if best is None or result.score > best[1].score:
                best = (candidate, result)
        return best

    def _create(self, offer: Any, need: Any, result: ScoreResult) -> CandidateOutcome:
        try:
            creation = self.lifecycle.create_match(offer, need, result, MatchStrategy.CANDIDATE)
        except StaleListingError as e:
            match_conflicts_total.labels(strategy=MatchStrategy.CANDIDATE.value, kind="stale").inc()
            logger.info(
                f"Lost claim race on {e.kind} {e.listing_id}; next sweep will retry",
                extra={"community_id": offer.community_id},
            )
            return CandidateOutcome(status=OUTCOME_STALE, score=result.score)

        if not creation.created:
            match_conflicts_total.labels(strategy=MatchStrategy.CANDIDATE.value, kind="duplicate").inc()
            return CandidateOutcome(status=OUTCOME_DUPLICATE, match_id=creation.match.id, score=result.score)

        return CandidateOutcome(status=OUTCOME_MATCHED, match_id=creation.match.id, score=result.score)
