"""
Domain entities for the multi-agent chat service.

These are pure domain objects with no infrastructure dependencies.
They define the core data structures shared by the registry, the
conversation store, the orchestrator and both gateways.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Optional

# ============================================
# User Context
# ============================================


@dataclass(frozen=True)
class UserContext:
    """Identity of the caller, extracted from a validated token.

    Attributes:
        user_id: User identifier (token subject)
        email: Optional email claim
        username: Optional display name claim
        session_id: Optional session identifier for tracking
    """

    user_id: str
    email: Optional[str] = None
    username: Optional[str] = None
    session_id: Optional[str] = None

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("user_id is required")


# ============================================
# Agents
# ============================================


class ProviderType(str, Enum):
    """AI backend an agent is bound to."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class AgentSummary:
    """Short agent reference returned with every chat turn."""

    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class Agent:
    """A named configuration binding a provider, model and system prompt.

    Agents are immutable once registered.

    Attributes:
        id: Unique agent identifier (e.g. 'general-assistant')
        name: Human-readable name
        description: What the agent is good at
        provider: AI backend used to answer turns
        model: Provider model identifier
        system_prompt: Instructions sent with every turn
        capabilities: Capability tags
        created_by: User who created a custom agent
        created_at: Creation timestamp for custom agents
        is_custom: True for user-defined agents
    """

    id: str
    name: str
    description: str
    provider: ProviderType
    model: str
    system_prompt: str
    capabilities: tuple[str, ...] = ()
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    is_custom: bool = False

    def summary(self) -> AgentSummary:
        """Return the {id, name} reference for this agent."""
        return AgentSummary(id=self.id, name=self.name)


# ============================================
# Messages
# ============================================


class MessageRole(str, Enum):
    """Role of a message in a conversation transcript."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single transcript entry. Immutable once appended.

    Attributes:
        role: Who produced the message
        content: Message text
        timestamp: When the message was created (UTC)
        author_connection_id: Real-time connection that sent it, if any
    """

    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    author_connection_id: Optional[str] = None


# ============================================
# Users
# ============================================


@dataclass
class UsageCounters:
    """Per-user usage. Both counters only ever grow."""

    request_count: int = 0
    token_count: int = 0


@dataclass
class UserAccount:
    """A user as seen by this service.

    Credentials live with the external account service; only the
    identity and usage counters are tracked here.
    """

    user_id: str
    email: Optional[str] = None
    username: Optional[str] = None
    usage: UsageCounters = field(default_factory=UsageCounters)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


# ============================================
# Files
# ============================================


@dataclass(frozen=True)
class StoredFile:
    """Metadata for an uploaded file held by the external file store."""

    file_id: str
    original_name: str
    mimetype: str
    size: int
    uploaded_by: str
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(UTC))


# ============================================
# Turn Results
# ============================================


class TurnState(str, Enum):
    """Lifecycle of a single chat turn."""

    RECEIVED = "received"
    AGENT_RESOLVED = "agent_resolved"
    PROVIDER_CALLED = "provider_called"
    APPENDED = "appended"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ProviderReply:
    """Normalized provider output: reply text plus total token cost."""

    reply_text: str
    tokens_used: int


@dataclass(frozen=True)
class TurnResult:
    """Outcome of a completed chat turn."""

    reply_text: str
    conversation_id: str
    tokens_used: int
    agent: AgentSummary
    timestamp: Optional[datetime] = None
