"""Matching and settlement exceptions.

Transient store failures (SQLAlchemy OperationalError and friends) are not
wrapped: they propagate untouched so the worker layer can retry them.
"""


class MatchingError(Exception):
    """Base exception for matching engine errors."""
    pass


class StaleListingError(MatchingError):
    """Listing is no longer available (claimed, closed, expired or moved).

    Raised when a conditional active -> matched claim affects no row.
    """

    def __init__(self, kind: str, listing_id):
        self.kind = kind
        self.listing_id = listing_id
        super().__init__(f"{kind} {listing_id} is no longer active")


class MatchNotFoundError(MatchingError):
    """Match does not exist."""

    def __init__(self, match_id):
        self.match_id = match_id
        super().__init__(f"Match {match_id} not found")


class MatchAlreadyClosedError(MatchingError):
    """Closure requested for a match that is no longer active."""

    def __init__(self, match_id, status: str):
        self.match_id = match_id
        self.status = status
        super().__init__(f"Match {match_id} is already {status}")


class NotParticipantError(MatchingError):
    """Requester is neither a participant nor a moderator."""

    def __init__(self, match_id, user_id):
        self.match_id = match_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not a participant of match {match_id}")


class InvalidClosureTypeError(MatchingError):
    """Unknown closure type."""

    def __init__(self, closure_type):
        self.closure_type = closure_type
        super().__init__(f"Invalid closure type: {closure_type}")


class UnknownRewardSourceError(MatchingError):
    """No active reward rule and no configured fallback for a source type."""

    def __init__(self, source_type: str):
        self.source_type = source_type
        super().__init__(f"No reward rule for source type: {source_type}")
