"""
Anthropic Claude LLM Provider.

Anthropic takes the system prompt as a separate ``system`` parameter,
returns a list of content blocks and reports usage as separate input
and output token counts.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import anthropic
from anthropic import AsyncAnthropic

from ..domain.entities import ProviderReply, ProviderType
from ..domain.exceptions import ErrorType, ProviderError
from .base import BaseLLMProvider, LLMProviderConfig, ProviderRequest

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Messages API provider.

    Usage:
        config = LLMProviderConfig(api_key="sk-ant-...")
        provider = AnthropicProvider(config)

        request = provider.create_request(
            "claude-3-sonnet-20240229", "You are a writer.", "Tell me a story"
        )
        reply = await provider.complete(request)
    """

    provider_type = ProviderType.ANTHROPIC

    def __init__(self, config: LLMProviderConfig, client: Optional[Any] = None):
        """Initialize the Anthropic provider.

        Args:
            config: Provider configuration
            client: Pre-built AsyncAnthropic-compatible client
        """
        super().__init__(config)

        self.client = client or AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=0,
        )

    def _build_request(self, request: ProviderRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.user_text}],
        }
        if request.system_prompt:
            kwargs["system"] = request.system_prompt
        return kwargs

    async def _send(self, kwargs: dict[str, Any]) -> Any:
        try:
            return await self.client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            logger.warning(f"Rate limited by Anthropic: {e}")
            raise ProviderError(
                f"Rate limited: {e}",
                error_type=ErrorType.RATE_LIMIT,
                provider=self.name,
                cause=e,
            )
        except anthropic.APITimeoutError as e:
            logger.error(f"Anthropic API timeout: {e}")
            raise ProviderError(
                f"Request timed out: {e}",
                error_type=ErrorType.TIMEOUT,
                provider=self.name,
                cause=e,
            )
        except (
            anthropic.AuthenticationError,
            anthropic.PermissionDeniedError,
            anthropic.BadRequestError,
            anthropic.NotFoundError,
        ) as e:
            logger.error(f"Anthropic rejected the request: {e}")
            raise ProviderError(
                f"Request rejected: {e}",
                error_type=ErrorType.FATAL,
                provider=self.name,
                cause=e,
            )
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise ProviderError(
                f"API error: {e}",
                error_type=ErrorType.RECOVERABLE,
                provider=self.name,
                cause=e,
            )
        except Exception as e:
            logger.exception(f"Unexpected error in Anthropic chat: {e}")
            raise ProviderError(
                str(e),
                error_type=ErrorType.FATAL,
                provider=self.name,
                cause=e,
            )

    def _parse_response(self, response: Any) -> ProviderReply:
        blocks = getattr(response, "content", None)
        if not blocks:
            raise self._malformed("no content blocks")

        text = next(
            (
                block.text
                for block in blocks
                if getattr(block, "type", None) == "text"
                and isinstance(getattr(block, "text", None), str)
            ),
            None,
        )
        if not text or not text.strip():
            raise self._malformed("empty reply")

        usage = getattr(response, "usage", None)
        tokens = self._count_tokens(
            getattr(usage, "input_tokens", None),
            getattr(usage, "output_tokens", None),
        )

        return ProviderReply(reply_text=text, tokens_used=tokens)

    async def close(self) -> None:
        await self.client.close()
