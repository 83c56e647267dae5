"""
Conversation Store Implementation.

Holds ordered, append-only transcripts in process memory. Appends never
await, so each one is atomic with respect to other tasks on the event
loop; ordering across a whole turn is the caller's job and is done with
the store's serialization tokens (see ``ConversationLocks``).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..domain.entities import Message
from ..domain.ports import IConversationStore
from .locks import ConversationLocks

logger = logging.getLogger(__name__)


class InMemoryConversationStore(IConversationStore):
    """In-memory conversation store.

    Usage:
        store = InMemoryConversationStore()
        await store.init()

        async with store.locks.hold("conv-1"):
            await store.append("conv-1", Message(role=MessageRole.USER, content="Hi"))

        messages = await store.read("conv-1")
    """

    def __init__(self, locks: Optional[ConversationLocks] = None):
        """Initialize the conversation store.

        Args:
            locks: Serialization tokens to share; a fresh set if omitted
        """
        self._locks = locks or ConversationLocks()
        self._conversations: dict[str, list[Message]] = {}

    @property
    def locks(self) -> ConversationLocks:
        return self._locks

    async def init(self) -> None:
        logger.info("Conversation store ready (in-memory)")

    async def close(self) -> None:
        count = len(self._conversations)
        self._conversations.clear()
        logger.info(f"Conversation store closed, dropped {count} conversations")

    async def append(self, conversation_id: str, message: Message) -> int:
        """Append a message, creating the conversation on first use."""
        messages = self._conversations.get(conversation_id)
        if messages is None:
            messages = []
            self._conversations[conversation_id] = messages
            logger.debug(f"Created conversation {conversation_id}")

        messages.append(message)
        return len(messages) - 1

    async def read(self, conversation_id: str) -> list[Message]:
        """Return a copy of the transcript."""
        return list(self._conversations.get(conversation_id, ()))

    async def list(self) -> list[str]:
        return list(self._conversations)

    async def evict_older_than(self, cutoff: datetime) -> list[str]:
        """Delete every conversation that started before ``cutoff``.

        Each candidate's token is taken before deleting, so a turn in
        progress finishes its appends first. The age check is repeated
        under the token because the transcript may have been replaced
        while waiting.
        """
        candidates = [
            conversation_id
            for conversation_id, messages in self._conversations.items()
            if messages and messages[0].timestamp < cutoff
        ]

        evicted: list[str] = []
        for conversation_id in candidates:
            async with self._locks.hold(conversation_id):
                messages = self._conversations.get(conversation_id)
                if messages and messages[0].timestamp < cutoff:
                    del self._conversations[conversation_id]
                    evicted.append(conversation_id)

        if evicted:
            logger.info(
                f"Evicted {len(evicted)} conversations started before {cutoff.isoformat()}"
            )
        return evicted
