"""Reward ledger and reward rules."""

from .service import RewardLedger, AwardResult
from .rules import RewardRuleTable

__all__ = ["RewardLedger", "AwardResult", "RewardRuleTable"]
