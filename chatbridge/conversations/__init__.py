"""In-memory conversation cache."""

from .store import (
    MAX_TITLE_LENGTH,
    Conversation,
    ConversationSnapshot,
    ConversationStore,
    find_new_turns,
)

__all__ = [
    "MAX_TITLE_LENGTH",
    "Conversation",
    "ConversationSnapshot",
    "ConversationStore",
    "find_new_turns",
]
