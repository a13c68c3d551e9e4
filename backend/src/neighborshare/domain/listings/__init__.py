"""Listing, match and ledger status vocabulary."""

from .status import (
    ListingKind,
    OfferStatus,
    NeedStatus,
    NeedUrgency,
    MatchStatus,
    ClosureType,
    MatchStrategy,
    LedgerEntryStatus,
    ChannelStatus,
    ActorRole,
    PRIVILEGED_ROLES,
    ALLOWED_TRANSITIONS,
    CLOSURE_TARGETS,
    can_transition,
    is_terminal,
)

__all__ = [
    "ListingKind",
    "OfferStatus",
    "NeedStatus",
    "NeedUrgency",
    "MatchStatus",
    "ClosureType",
    "MatchStrategy",
    "LedgerEntryStatus",
    "ChannelStatus",
    "ActorRole",
    "PRIVILEGED_ROLES",
    "ALLOWED_TRANSITIONS",
    "CLOSURE_TARGETS",
    "can_transition",
    "is_terminal",
]
