"""
Per-conversation serialization tokens.

A turn holds its conversation's token from the user append through the
assistant append, so a second turn on the same conversation queues
behind it. The retention sweep takes the same token before deleting.
Tokens for different conversations never contend.

asyncio.Lock wakes waiters in FIFO order, which gives arrival-order
completion for queued turns.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

logger = logging.getLogger(__name__)


@dataclass
class _LockEntry:
    """A conversation lock plus the number of tasks holding or awaiting it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ConversationLocks:
    """Reference-counted keyed locks.

    Entries are created on first use and dropped as soon as no task holds
    or waits for them, so idle conversations cost nothing.

    Usage:
        locks = ConversationLocks()

        async with locks.hold("conv-123"):
            await store.append("conv-123", user_message)
            reply = await dispatcher.dispatch(agent, text)
            await store.append("conv-123", assistant_message)
    """

    def __init__(self):
        self._entries: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        """Acquire the token for a conversation, waiting if it is held."""
        entry = self._entries.get(conversation_id)
        if entry is None:
            entry = _LockEntry()
            self._entries[conversation_id] = entry

        entry.users += 1
        try:
            if entry.lock.locked():
                logger.debug(f"Waiting for conversation token {conversation_id}")
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(conversation_id) is entry:
                del self._entries[conversation_id]

    def is_held(self, conversation_id: str) -> bool:
        """Return True if some task currently holds the token."""
        entry = self._entries.get(conversation_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
