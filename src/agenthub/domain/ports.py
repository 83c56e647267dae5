"""
Port interfaces (abstract base classes) for the chat service.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern, so the
in-memory stores can be replaced by durable ones without touching the
orchestrator or the gateways.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..memory.locks import ConversationLocks
    from .entities import (
        Agent,
        Message,
        ProviderReply,
        StoredFile,
        UsageCounters,
        UserAccount,
        UserContext,
    )


# ============================================
# Lifecycle
# ============================================


class IManagedStore(ABC):
    """A store with an explicit lifecycle."""

    async def init(self) -> None:
        """Prepare the store for use. Called once at startup."""

    async def close(self) -> None:
        """Release resources. Called once at shutdown."""


# ============================================
# Agent Registry Interface
# ============================================


class IAgentRegistry(IManagedStore):
    """Interface for agent definitions.

    Agents are insert-only: there is no update or delete.
    """

    @abstractmethod
    async def register(self, agent: Agent) -> Agent:
        """Add an agent.

        Raises:
            DuplicateAgentError: If the id is already registered
        """
        pass

    @abstractmethod
    async def get(self, agent_id: str) -> Agent:
        """Get an agent by id.

        Raises:
            AgentNotFoundError: If the id is unknown
        """
        pass

    @abstractmethod
    async def list(self) -> list[Agent]:
        """List all agents in registration order."""
        pass


# ============================================
# Conversation Store Interface
# ============================================


class IConversationStore(IManagedStore):
    """Interface for ordered, append-only conversation transcripts."""

    @property
    @abstractmethod
    def locks(self) -> ConversationLocks:
        """Per-conversation serialization tokens shared with callers."""
        pass

    @abstractmethod
    async def append(self, conversation_id: str, message: Message) -> int:
        """Append a message, creating the conversation if needed.

        Returns:
            0-based position of the message in the transcript
        """
        pass

    @abstractmethod
    async def read(self, conversation_id: str) -> list[Message]:
        """Return the transcript in append order (empty if absent)."""
        pass

    @abstractmethod
    async def list(self) -> list[str]:
        """Return all conversation ids in creation order."""
        pass

    @abstractmethod
    async def evict_older_than(self, cutoff: datetime) -> list[str]:
        """Delete conversations whose first message predates the cutoff.

        Returns:
            Ids of the conversations that were removed
        """
        pass


# ============================================
# User Store Interface
# ============================================


class IUserStore(IManagedStore):
    """Interface for user accounts and usage counters."""

    @abstractmethod
    async def ensure(self, context: UserContext) -> UserAccount:
        """Get the account for this identity, creating it on first use."""
        pass

    @abstractmethod
    async def get(self, user_id: str) -> Optional[UserAccount]:
        """Get an account by user id."""
        pass

    @abstractmethod
    async def record_usage(self, user_id: str, tokens: int) -> UsageCounters:
        """Count one successful request and its token cost."""
        pass


# ============================================
# File Store Interface
# ============================================


class IFileStore(IManagedStore):
    """Interface for the external file store (retention only)."""

    @abstractmethod
    async def put(self, stored_file: StoredFile) -> StoredFile:
        """Record an uploaded file."""
        pass

    @abstractmethod
    async def get(self, file_id: str) -> Optional[StoredFile]:
        """Get file metadata by id."""
        pass

    @abstractmethod
    async def evict_older_than(self, cutoff: datetime) -> list[str]:
        """Delete files uploaded before the cutoff.

        Returns:
            Ids of the files that were removed
        """
        pass


# ============================================
# Provider Dispatch Interface
# ============================================


class IProviderDispatcher(ABC):
    """Interface for calling the AI backend bound to an agent.

    Implementations hide every provider-specific difference; callers never
    branch on ``agent.provider``.
    """

    @abstractmethod
    async def dispatch(self, agent: Agent, user_text: str) -> ProviderReply:
        """Send one user message to the agent's backend.

        Raises:
            ProviderError: On any backend failure
        """
        pass
