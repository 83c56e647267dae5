"""
Base LLM Provider Implementation.

Every backend takes the same ``ProviderRequest`` envelope and returns the
same ``ProviderReply``. Subclasses only describe how the envelope maps
onto their SDK call and how their response maps back.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain.entities import ProviderReply, ProviderType
from ..domain.exceptions import ErrorType, ProviderError

logger = logging.getLogger(__name__)


@dataclass
class LLMProviderConfig:
    """Configuration for LLM providers.

    Attributes:
        api_key: API key for the provider
        base_url: Optional custom base URL
        timeout: Request timeout in seconds
        max_tokens: Default max tokens per reply
        temperature: Default temperature
    """

    api_key: str
    base_url: Optional[str] = None
    timeout: float = 60.0
    max_tokens: int = 1000
    temperature: float = 0.7
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderRequest:
    """Provider-neutral description of one chat call."""

    model: str
    system_prompt: str
    user_text: str
    max_tokens: int = 1000
    temperature: float = 0.7


class BaseLLMProvider(ABC):
    """Base class for LLM provider implementations.

    SDK clients are created with retries disabled; retry policy belongs
    to the orchestrator.
    """

    provider_type: ProviderType

    def __init__(self, config: LLMProviderConfig):
        """Initialize the provider.

        Args:
            config: Provider configuration
        """
        self.config = config

    @property
    def name(self) -> str:
        return self.provider_type.value

    def create_request(
        self,
        model: str,
        system_prompt: str,
        user_text: str,
    ) -> ProviderRequest:
        """Build an envelope using this provider's configured defaults."""
        return ProviderRequest(
            model=model,
            system_prompt=system_prompt,
            user_text=user_text,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )

    async def complete(self, request: ProviderRequest) -> ProviderReply:
        """Run one non-streaming completion.

        Raises:
            ProviderError: On SDK errors or an unusable response
        """
        kwargs = self._build_request(request)
        response = await self._send(kwargs)
        return self._parse_response(response)

    @abstractmethod
    def _build_request(self, request: ProviderRequest) -> dict[str, Any]:
        """Translate the envelope into SDK call arguments."""
        pass

    @abstractmethod
    async def _send(self, kwargs: dict[str, Any]) -> Any:
        """Call the SDK, translating its errors into ProviderError."""
        pass

    @abstractmethod
    def _parse_response(self, response: Any) -> ProviderReply:
        """Extract reply text and total token cost from the SDK response."""
        pass

    def _malformed(self, reason: str) -> ProviderError:
        logger.error(f"Malformed {self.name} response: {reason}")
        return ProviderError(
            f"Malformed response: {reason}",
            error_type=ErrorType.RECOVERABLE,
            provider=self.name,
        )

    @staticmethod
    def _count_tokens(*values: Any) -> int:
        """Sum token counts, treating missing or non-integer values as 0."""
        total = 0
        for value in values:
            if isinstance(value, int) and not isinstance(value, bool) and value > 0:
                total += value
        return total

    async def close(self) -> None:
        """Release the SDK client."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
