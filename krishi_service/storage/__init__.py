# Storage Package
"""
Conversation, advisory and query-log persistence.
"""

from .conversation_store import (
    ConversationExistsError,
    ConversationStore,
    InMemoryConversationStore,
    RedisConversationStore,
    create_store,
    new_conversation,
)

__all__ = [
    "ConversationExistsError",
    "ConversationStore",
    "InMemoryConversationStore",
    "RedisConversationStore",
    "create_store",
    "new_conversation",
]
