"""Match lifecycle management."""

from .service import MatchLifecycleManager, MatchCreation, ClosureResult

__all__ = ["MatchLifecycleManager", "MatchCreation", "ClosureResult"]
