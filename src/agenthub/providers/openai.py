"""
OpenAI GPT LLM Provider.

OpenAI takes the system prompt as the first entry of the ``messages``
array and reports usage as ``total_tokens``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from ..domain.entities import ProviderReply, ProviderType
from ..domain.exceptions import ErrorType, ProviderError
from .base import BaseLLMProvider, LLMProviderConfig, ProviderRequest

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat completions provider.

    Usage:
        config = LLMProviderConfig(api_key="sk-...")
        provider = OpenAIProvider(config)

        request = provider.create_request("gpt-4", "You are helpful.", "Hello")
        reply = await provider.complete(request)
    """

    provider_type = ProviderType.OPENAI

    def __init__(self, config: LLMProviderConfig, client: Optional[Any] = None):
        """Initialize the OpenAI provider.

        Args:
            config: Provider configuration
            client: Pre-built AsyncOpenAI-compatible client
        """
        super().__init__(config)

        self.client = client or AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=0,
        )

    def _build_request(self, request: ProviderRequest) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_text})

        return {
            "model": request.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

    async def _send(self, kwargs: dict[str, Any]) -> Any:
        try:
            return await self.client.chat.completions.create(**kwargs)
        except openai.RateLimitError as e:
            logger.warning(f"Rate limited by OpenAI: {e}")
            raise ProviderError(
                f"Rate limited: {e}",
                error_type=ErrorType.RATE_LIMIT,
                provider=self.name,
                cause=e,
            )
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            raise ProviderError(
                f"Request timed out: {e}",
                error_type=ErrorType.TIMEOUT,
                provider=self.name,
                cause=e,
            )
        except (
            openai.AuthenticationError,
            openai.PermissionDeniedError,
            openai.BadRequestError,
            openai.NotFoundError,
        ) as e:
            logger.error(f"OpenAI rejected the request: {e}")
            raise ProviderError(
                f"Request rejected: {e}",
                error_type=ErrorType.FATAL,
                provider=self.name,
                cause=e,
            )
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise ProviderError(
                f"API error: {e}",
                error_type=ErrorType.RECOVERABLE,
                provider=self.name,
                cause=e,
            )
        except Exception as e:
            logger.exception(f"Unexpected error in OpenAI chat: {e}")
            raise ProviderError(
                str(e),
                error_type=ErrorType.FATAL,
                provider=self.name,
                cause=e,
            )

    def _parse_response(self, response: Any) -> ProviderReply:
        choices = getattr(response, "choices", None)
        if not choices:
            raise self._malformed("no choices")

        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str) or not content.strip():
            raise self._malformed("empty reply")

        usage = getattr(response, "usage", None)
        tokens = self._count_tokens(getattr(usage, "total_tokens", None))

        return ProviderReply(reply_text=content, tokens_used=tokens)

    async def close(self) -> None:
        await self.client.close()
