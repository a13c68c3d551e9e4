from .sql_channels import SqlConversationChannels

__all__ = ["SqlConversationChannels"]
