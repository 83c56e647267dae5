"""Chat Orchestrator.

Coordinates the registry, the provider dispatcher and the stores for a
single chat turn. Both gateways call into it.
"""

from .chat import (
    MAX_CONVERSATION_ID_LENGTH,
    MAX_MESSAGE_LENGTH,
    ChatOrchestrator,
    OrchestratorConfig,
)
from .resilience import retry_async

__all__ = [
    "ChatOrchestrator",
    "OrchestratorConfig",
    "MAX_MESSAGE_LENGTH",
    "MAX_CONVERSATION_ID_LENGTH",
    "retry_async",
]
