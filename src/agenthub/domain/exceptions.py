"""Exception hierarchy for the chat service.

Exception Hierarchy:
    ChatServiceError (base)
    ├── ValidationError (malformed or missing fields, rejected up front)
    ├── AgentNotFoundError (unknown agent id, nothing mutated)
    ├── DuplicateAgentError (agent id already registered)
    └── ProviderError (AI backend failed, timed out or returned junk)

Rate limiting and authentication failures are raised as FastAPI
``HTTPException`` subclasses next to the code that enforces them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorType(str, Enum):
    """How a provider failure should be treated by the caller."""

    RECOVERABLE = "recoverable"
    FATAL = "fatal"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"


# ============================================
# Base Exception
# ============================================


class ChatServiceError(Exception):
    """Base for every error a chat turn can end with.

    ``code`` is stable and safe to show clients; ``details`` holds the
    structured context that goes with it. Pass ``cause`` to chain the
    library exception that triggered the failure.
    """

    code = "CHAT_SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = dict(details or {})
        self.recoverable = recoverable
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")"
        return text

    def to_dict(self) -> dict[str, Any]:
        """Structured form for logs."""
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# ============================================
# Request Errors
# ============================================


class ValidationError(ChatServiceError):
    """Raised when a chat request is malformed."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.field = field


class AgentNotFoundError(ChatServiceError):
    """Raised when an agent id is not registered."""

    def __init__(self, agent_id: str, **kwargs):
        super().__init__(
            "Agent not found",
            code="AGENT_NOT_FOUND",
            details={"agent_id": agent_id},
            **kwargs,
        )
        self.agent_id = agent_id


class DuplicateAgentError(ChatServiceError):
    """Raised when registering an agent id that already exists."""

    def __init__(self, agent_id: str, **kwargs):
        super().__init__(
            "Agent already exists",
            code="DUPLICATE_AGENT",
            details={"agent_id": agent_id},
            **kwargs,
        )
        self.agent_id = agent_id


# ============================================
# Provider Errors
# ============================================


class ProviderError(ChatServiceError):
    """Raised when an AI backend call fails.

    Covers API errors, timeouts, provider-side rate limits and
    responses that cannot be normalized.
    """

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.RECOVERABLE,
        provider: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["error_type"] = error_type.value
        if provider:
            details["provider"] = provider
        kwargs.setdefault("recoverable", error_type != ErrorType.FATAL)
        super().__init__(
            message,
            code="PROVIDER_ERROR",
            details=details,
            **kwargs,
        )
        self.error_type = error_type
        self.provider = provider
