"""Offer/need compatibility scoring.

Weighted sum of five independent factors, normalized by the sum of the
maximum weights:

- Category (0.50): exact match full, either side "other" half
- Compatibility tags (0.20): full when either side declares none, else
  weight * covered / need tag count
- Quantity (0.15): full when the offer covers the need, else
  weight * max(0, offer / need)
- Time window (0.10): exact full, either side "flexible" 0.7x, else 0.3x
- Distance (0.05): always full; community membership implies reachability

score = clamp(sum(contributions) / sum(weights), 0..1)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .survey import Survey, parse_survey

DEFAULT_SCORE_THRESHOLD = 0.4

CATEGORY_WEIGHT = 0.50
TAGS_WEIGHT = 0.20
QUANTITY_WEIGHT = 0.15
TIME_WINDOW_WEIGHT = 0.10
DISTANCE_WEIGHT = 0.05

WILDCARD_CATEGORY = "other"
FLEXIBLE_TIME_WINDOW = "flexible"


@dataclass
class ScoreResult:
    """Compatibility of one offer with one need.

    Attributes:
        score: Normalized score (0.0-1.0)
        reasons: Human-readable reasons, in factor order
        factors: Weighted contribution per factor (debug)
    """
    score: float
    reasons: List[str]
    factors: Dict[str, float] = field(default_factory=dict)


class CompatibilityScorer:
    """Score offers against needs.

    Pure and deterministic: no I/O and no state beyond the eligibility
    threshold. Malformed surveys are degraded to defaults by parse_survey,
    so scoring never fails on listing data.
    """

    def __init__(self, threshold: float = DEFAULT_SCORE_THRESHOLD):
        self.threshold = threshold

    def score(self, offer: Any, need: Any) -> ScoreResult:
        """Score an offer against a need using their raw survey payloads.

        Args:
            offer: Object with a survey_json attribute
            need: Object with a survey_json attribute

        Returns:
            ScoreResult with normalized score and reasons
        """
        return self.score_surveys(
            parse_survey(getattr(offer, "survey_json", None)),
            parse_survey(getattr(need, "survey_json", None)),
        )

    def score_surveys(self, offer_survey: Survey, need_survey: Survey) -> ScoreResult:
        """Score two already-parsed surveys."""
        reasons: List[str] = []
        factors: Dict[str, float] = {}

        factors["category"] = self._category(offer_survey, need_survey, reasons)
        factors["tags"] = self._tags(offer_survey, need_survey, reasons)
        factors["quantity"] = self._quantity(offer_survey, need_survey, reasons)
        factors["time_window"] = self._time_window(offer_survey, need_survey, reasons)
        factors["distance"] = self._distance(offer_survey, need_survey, reasons)

        total = 0.0
        for contribution in factors.values():
            total += contribution
        max_total = 0.0
        for weight in (CATEGORY_WEIGHT, TAGS_WEIGHT, QUANTITY_WEIGHT, TIME_WINDOW_WEIGHT, DISTANCE_WEIGHT):
            max_total += weight

        score = max(0.0, min(1.0, total / max_total))
        return ScoreResult(score=score, reasons=reasons, factors=factors)

    def is_eligible(self, result: ScoreResult) -> bool:
        return result.score >= self.threshold

    def _category(self, offer: Survey, need: Survey, reasons: List[str]) -> float:
        if offer.category is not None and offer.category == need.category:
            reasons.append("category matches")
            return CATEGORY_WEIGHT
        if WILDCARD_CATEGORY in (offer.category, need.category):
            reasons.append("category compatible")
            return CATEGORY_WEIGHT * 0.5
        return 0.0

    def _tags(self, offer: Survey, need: Survey, reasons: List[str]) -> float:
        offer_tags = offer.tag_set()
        need_tags = need.tag_set()

        if not offer_tags or not need_tags:
            reasons.append("no specific compatibility requirements")
            return TAGS_WEIGHT

        covered = len(need_tags & offer_tags)
        if covered == len(need_tags):
            reasons.append("all compatibility requirements satisfied")
        elif covered > 0:
            reasons.append(f"{covered}/{len(need_tags)} compatibility requirements satisfied")
        return TAGS_WEIGHT * covered / len(need_tags)

    def _quantity(self, offer: Survey, need: Survey, reasons: List[str]) -> float:
        if offer.quantity >= need.quantity:
            reasons.append("sufficient quantity")
            return QUANTITY_WEIGHT

        # need.quantity > offer.quantity >= 0 here
        ratio = max(0.0, offer.quantity / need.quantity)
        if ratio >= 0.5:
            reasons.append("partial quantity match")
        return QUANTITY_WEIGHT * ratio

    def _time_window(self, offer: Survey, need: Survey, reasons: List[str]) -> float:
        if offer.time_window == need.time_window:
            reasons.append("time window matches")
            return TIME_WINDOW_WEIGHT
        if FLEXIBLE_TIME_WINDOW in (offer.time_window, need.time_window):
            reasons.append("flexible time window")
            return TIME_WINDOW_WEIGHT * 0.7
        # Adjacent windows still overlap a little
        return TIME_WINDOW_WEIGHT * 0.3

    def _distance(self, offer: Survey, need: Survey, reasons: List[str]) -> float:
        reasons.append(f"within {min(offer.distance_km, need.distance_km):g}km")
        return DISTANCE_WEIGHT
