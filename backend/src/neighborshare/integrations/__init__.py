"""Integration ports for external collaborators."""

from .ports import (
    ListingDirectoryPort,
    ConversationChannelPort,
    NotificationDispatcherPort,
    NotificationError,
    ChannelError,
)

__all__ = [
    "ListingDirectoryPort",
    "ConversationChannelPort",
    "NotificationDispatcherPort",
    "NotificationError",
    "ChannelError",
]
