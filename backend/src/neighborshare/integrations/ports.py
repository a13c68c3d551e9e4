"""Ports to the engine's collaborators.

The matching engine only talks to listings, chat channels and notification
delivery through these interfaces. Default adapters live under
infrastructure/; tests substitute mocks.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from uuid import UUID


class ListingDirectoryPort(ABC):
    """Port for reading and claiming offers and needs.

    Implementations:
    - SqlListingDirectory: SQLAlchemy-backed, claims via conditional UPDATE
    """

    @abstractmethod
    def get_offer(self, offer_id: UUID) -> Optional[Any]:
        """Fetch the current state of an offer, bypassing any cache.

        Returns:
            Offer or None if it does not exist
        """
        pass

    @abstractmethod
    def get_need(self, need_id: UUID) -> Optional[Any]:
        """Fetch the current state of a need, bypassing any cache."""
        pass

    @abstractmethod
    def active_offers(self, community_id: UUID, limit: Optional[int] = None) -> List[Any]:
        """Active, unexpired offers of a community ordered by created_at then id."""
        pass

    @abstractmethod
    def active_needs(self, community_id: UUID, limit: Optional[int] = None) -> List[Any]:
        """Active needs of a community ordered by created_at then id."""
        pass

    @abstractmethod
    def claim_offer(self, offer_id: UUID) -> bool:
        """Conditionally move an offer from active to matched.

        Returns:
            bool: True if this caller won the claim
        """
        pass

    @abstractmethod
    def claim_need(self, need_id: UUID) -> bool:
        """Conditionally move a need from active to matched."""
        pass

    @abstractmethod
    def reopen_offer(self, offer_id: UUID) -> bool:
        """Move a matched offer back to active."""
        pass

    @abstractmethod
    def reopen_need(self, need_id: UUID) -> bool:
        """Move a matched need back to active."""
        pass

    @abstractmethod
    def communities_with_active_listings(self) -> List[UUID]:
        """Communities that have at least one active offer and one active need."""
        pass


class ConversationChannelPort(ABC):
    """Port for provisioning the chat thread between match participants.

    Implementations:
    - SqlConversationChannels: channel rows in the application database
    """

    @abstractmethod
    def open(self, match_id: UUID, participant_a: UUID, participant_b: UUID) -> str:
        """Open (or return the existing) channel for a match.

        Must be idempotent per match_id.

        Returns:
            str: Channel id
        """
        pass

    @abstractmethod
    def close(self, channel_id: str) -> None:
        """Close a channel. Closing a closed channel is a no-op."""
        pass


class NotificationDispatcherPort(ABC):
    """Port for user notifications.

    Implementations:
    - CeleryNotificationDispatcher: enqueues the notifications.send task
    """

    @abstractmethod
    def send(
        self,
        user_id: UUID,
        kind: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Queue a notification for delivery.

        Raises:
            NotificationError: If the notification could not be queued
        """
        pass


class NotificationError(Exception):
    """Exception raised when a notification cannot be queued."""
    pass


class ChannelError(Exception):
    """Exception raised when a conversation channel cannot be opened or closed."""
    pass
