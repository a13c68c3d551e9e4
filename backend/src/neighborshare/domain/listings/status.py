"""Status enums and the match state machine.

Offers and needs move to MATCHED only through the matching engine and are
reopened to ACTIVE when their match is cancelled. Matches start ACTIVE and
end in exactly one terminal state.

State flow (match):
ACTIVE → CLOSED | CANCELLED | DISPUTED (all terminal)
"""

from enum import Enum
from typing import Dict, List, Optional


class ListingKind(str, Enum):
    """Which side of the exchange a listing is on"""
    OFFER = "offer"
    NEED = "need"


class OfferStatus(str, Enum):
    """Offer lifecycle status"""
    DRAFT = "draft"
    ACTIVE = "active"
    MATCHED = "matched"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"        # Set by external housekeeping


class NeedStatus(str, Enum):
    """Need lifecycle status"""
    ACTIVE = "active"
    MATCHED = "matched"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class NeedUrgency(str, Enum):
    """Urgency tier declared by the member posting a need"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class MatchStatus(str, Enum):
    """Match lifecycle status"""
    ACTIVE = "active"
    CLOSED = "closed"          # Terminal success
    CANCELLED = "cancelled"    # Terminal, listings reopened
    DISPUTED = "disputed"      # Terminal, handed to moderation


class ClosureType(str, Enum):
    """How a participant asks to end a match"""
    SUCCESSFUL = "successful"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class MatchStrategy(str, Enum):
    """Which matcher created a match"""
    CANDIDATE = "candidate"
    SWEEP = "sweep"


class LedgerEntryStatus(str, Enum):
    """Reward ledger entry status (void is set by moderation only)"""
    VALID = "valid"
    VOID = "void"


class ChannelStatus(str, Enum):
    """Conversation channel status"""
    ACTIVE = "active"
    CLOSED = "closed"


class ActorRole(str, Enum):
    """Role of whoever requests a match transition"""
    MEMBER = "member"
    MODERATOR = "moderator"
    ADMIN = "admin"


# Roles allowed to close a match they do not participate in
PRIVILEGED_ROLES = frozenset({ActorRole.MODERATOR, ActorRole.ADMIN})


# State transition rules
ALLOWED_TRANSITIONS: Dict[MatchStatus, List[MatchStatus]] = {
    MatchStatus.ACTIVE: [MatchStatus.CLOSED, MatchStatus.CANCELLED, MatchStatus.DISPUTED],
    MatchStatus.CLOSED: [],
    MatchStatus.CANCELLED: [],
    MatchStatus.DISPUTED: [],
}

# Target match status per requested closure type
CLOSURE_TARGETS: Dict[ClosureType, MatchStatus] = {
    ClosureType.SUCCESSFUL: MatchStatus.CLOSED,
    ClosureType.CANCELLED: MatchStatus.CANCELLED,
    ClosureType.DISPUTED: MatchStatus.DISPUTED,
}


def can_transition(from_status: Optional[MatchStatus], to_status: MatchStatus) -> bool:
    """Validate if a match status transition is allowed

    Args:
        from_status: Current status (None for a match not yet created)
        to_status: Target status

    Returns:
        True if transition is allowed, False otherwise

    Example:
        >>> can_transition(MatchStatus.ACTIVE, MatchStatus.CLOSED)
        True
        >>> can_transition(MatchStatus.CLOSED, MatchStatus.CANCELLED)
        False
    """
    if from_status is None:
        return to_status == MatchStatus.ACTIVE
    return to_status in ALLOWED_TRANSITIONS.get(from_status, [])


def is_terminal(status: MatchStatus) -> bool:
    """True if no further transitions are allowed from status."""
    return not ALLOWED_TRANSITIONS.get(status, [])
