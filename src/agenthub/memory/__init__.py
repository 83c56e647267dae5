"""In-process stores for conversations, users and files."""

from .conversation import InMemoryConversationStore
from .files import InMemoryFileStore
from .locks import ConversationLocks
from .users import InMemoryUserStore

__all__ = [
    "ConversationLocks",
    "InMemoryConversationStore",
    "InMemoryFileStore",
    "InMemoryUserStore",
]
