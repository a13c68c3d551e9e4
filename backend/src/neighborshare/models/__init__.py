"""SQLAlchemy Models for neighborshare"""

from .base import Base, PortableJSONB, utcnow, as_utc
from .offer import Offer
from .need import Need
from .match import Match
from .reward_ledger import RewardLedgerEntry, RewardRule
from .pair_history import PairHistory
from .conversation_channel import ConversationChannel

__all__ = [
    "Base",
    "PortableJSONB",
    "utcnow",
    "as_utc",
    "Offer",
    "Need",
    "Match",
    "RewardLedgerEntry",
    "RewardRule",
    "PairHistory",
    "ConversationChannel",
]
