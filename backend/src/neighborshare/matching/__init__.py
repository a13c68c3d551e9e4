"""Matching module for neighborshare.

This module implements offer/need matching:
- Compatibility scoring over structured listing surveys
- Candidate matching for newly created listings
- Greedy community sweeps for everything the candidate matcher missed
"""

from .errors import (
    MatchingError,
    StaleListingError,
    MatchNotFoundError,
    MatchAlreadyClosedError,
    NotParticipantError,
    InvalidClosureTypeError,
    UnknownRewardSourceError,
)
from .survey import Survey, parse_survey
from .scorer import CompatibilityScorer, ScoreResult
from .candidate_matcher import CandidateMatcher, CandidateOutcome
from .sweep_matcher import GreedySweepMatcher, SweepReport

__all__ = [
    "MatchingError",
    "StaleListingError",
    "MatchNotFoundError",
    "MatchAlreadyClosedError",
    "NotParticipantError",
    "InvalidClosureTypeError",
    "UnknownRewardSourceError",
    "Survey",
    "parse_survey",
    "CompatibilityScorer",
    "ScoreResult",
    "CandidateMatcher",
    "CandidateOutcome",
    "GreedySweepMatcher",
    "SweepReport",
]
