"""Community-wide greedy sweep.

Catches pairs the candidate matcher missed (listings created before their
counterpart, lost claim races, reopened listings). Every eligible cross
pair is scored once, pairs are walked best-first, and each offer and need
is used at most once per sweep. Greedy, not maximum-weight: a high score
early can block two medium scores later.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional
from uuid import UUID

from ..domain.listings import MatchStrategy
from ..integrations.ports import ListingDirectoryPort
from ..observability.metrics import match_conflicts_total, sweep_duration_seconds
from .errors import StaleListingError
from .scorer import CompatibilityScorer, ScoreResult
from .survey import parse_survey

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Summary of one community sweep."""
    community_id: UUID
    offers_considered: int = 0
    needs_considered: int = 0
    eligible_pairs: int = 0
    matches_created: int = 0
    duplicates: int = 0
    stale: int = 0
    duration_seconds: float = 0.0
    match_ids: List[UUID] = field(default_factory=list)

    def to_dict(self):
        return {
            "community_id": str(self.community_id),
            "offers_considered": self.offers_considered,
            "needs_considered": self.needs_considered,
            "eligible_pairs": self.eligible_pairs,
            "matches_created": self.matches_created,
            "duplicates": self.duplicates,
            "stale": self.stale,
            "duration_seconds": self.duration_seconds,
            "match_ids": [str(match_id) for match_id in self.match_ids],
        }


@dataclass
class _ScoredPair:
    offer: Any
    need: Any
    result: ScoreResult


class GreedySweepMatcher:
    """Greedy conflict-free assignment over one community."""

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

    def run(self, community_id: UUID) -> SweepReport:
        """Sweep one community.

        Args:
            community_id: Community to sweep

        Returns:
            SweepReport with counts and duration

        Raises:
            sqlalchemy.exc.OperationalError: Transient store errors propagate
        """
        started = time.perf_counter()
        report = SweepReport(community_id=community_id)

        offers = self.listings.active_offers(community_id, limit=self.candidate_limit)
        needs = self.listings.active_needs(community_id, limit=self.candidate_limit)
        report.offers_considered = len(offers)
        report.needs_considered = len(needs)

        pairs = self._eligible_pairs(offers, needs)
        report.eligible_pairs = len(pairs)

        assigned_offers = set()
        assigned_needs = set()
        for pair in pairs:
            if pair.offer.id in assigned_offers or pair.need.id in assigned_needs:
                continue

            try:
                creation = self.lifecycle.create_match(pair.offer, pair.need, pair.result, MatchStrategy.SWEEP)
            except StaleListingError as e:
                report.stale += 1
                match_conflicts_total.labels(strategy=MatchStrategy.SWEEP.value, kind="stale").inc()
                # Claimed elsewhere: unavailable for the rest of this sweep
                if e.kind == "offer":
                    assigned_offers.add(pair.offer.id)
                else:
                    assigned_needs.add(pair.need.id)
                logger.info(f"Skipping pair, {e.kind} {e.listing_id} already claimed", extra={"community_id": community_id})
                continue

            if not creation.created:
                report.duplicates += 1
                match_conflicts_total.labels(strategy=MatchStrategy.SWEEP.value, kind="duplicate").inc()
                logger.info(
                    f"Skipping pair, already matched as {creation.match.id}",
                    extra={"community_id": community_id},
                )
                continue

            assigned_offers.add(pair.offer.id)
            assigned_needs.add(pair.need.id)
            report.matches_created += 1
            report.match_ids.append(creation.match.id)

        report.duration_seconds = time.perf_counter() - started
        sweep_duration_seconds.observe(report.duration_seconds)
        logger.info(
            f"Sweep finished: {report.matches_created} matches from {report.eligible_pairs} eligible pairs "
            f"({report.offers_considered} offers, {report.needs_considered} needs)",
            extra={"community_id": community_id},
        )
        return report

    def _eligible_pairs(self, offers: List[Any], needs: List[Any]) -> List[_ScoredPair]:
        """Score every cross pair once and order best-first.

        The sort is stable, so equal scores keep offer-major, need-minor
        fetch order.
        """
        need_surveys = [(need, parse_survey(need.survey_json)) for need in needs]
        pairs = []
        for offer in offers:
            offer_survey = parse_survey(offer.survey_json)
            for need, need_survey in need_surveys:
                if offer.owner_id == need.owner_id:
                    continue
                result = self.scorer.score_surveys(offer_survey, need_survey)
                if self.scorer.is_eligible(result):
                    pairs.append(_ScoredPair(offer=offer, need=need, result=result))

        pairs.sort(key=lambda pair: -pair.result.score)
        return pairs
