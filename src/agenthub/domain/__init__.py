"""Domain entities, exceptions and port interfaces for the chat service."""

from .entities import (
    Agent,
    AgentSummary,
    Message,
    MessageRole,
    ProviderReply,
    ProviderType,
    StoredFile,
    TurnResult,
    TurnState,
    UsageCounters,
    UserAccount,
    UserContext,
)
from .exceptions import (
    AgentNotFoundError,
    ChatServiceError,
    DuplicateAgentError,
    ErrorType,
    ProviderError,
    ValidationError,
)
from .ports import (
    IAgentRegistry,
    IConversationStore,
    IFileStore,
    IManagedStore,
    IProviderDispatcher,
    IUserStore,
)

__all__ = [
    # Entities
    "Agent",
    "AgentSummary",
    "Message",
    "MessageRole",
    "ProviderReply",
    "ProviderType",
    "StoredFile",
    "TurnResult",
    "TurnState",
    "UsageCounters",
    "UserAccount",
    "UserContext",
    # Exceptions
    "AgentNotFoundError",
    "ChatServiceError",
    "DuplicateAgentError",
    "ErrorType",
    "ProviderError",
    "ValidationError",
    # Ports
    "IAgentRegistry",
    "IConversationStore",
    "IFileStore",
    "IManagedStore",
    "IProviderDispatcher",
    "IUserStore",
]
