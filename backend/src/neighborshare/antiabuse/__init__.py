"""Anti-abuse signals."""

from .pair_history import PairHistoryGuard, PairRepetition, normalize_pair

__all__ = ["PairHistoryGuard", "PairRepetition", "normalize_pair"]
