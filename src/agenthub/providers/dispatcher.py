"""
Provider Dispatcher.

Routes a turn to the backend bound to the agent. This is the only place
that looks at ``agent.provider``; adding a backend means registering one
more ``BaseLLMProvider`` here.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, Optional

from ..domain.entities import Agent, ProviderReply, ProviderType
from ..domain.exceptions import ErrorType, ProviderError
from ..domain.ports import IProviderDispatcher
from .base import BaseLLMProvider

logger = logging.getLogger(__name__)


class ProviderDispatcher(IProviderDispatcher):
    """Dispatches chat turns to registered providers.

    The dispatcher makes exactly one provider call per ``dispatch``;
    it never retries.

    Usage:
        dispatcher = ProviderDispatcher([
            OpenAIProvider(LLMProviderConfig(api_key=openai_key)),
            AnthropicProvider(LLMProviderConfig(api_key=anthropic_key)),
        ])

        reply = await dispatcher.dispatch(agent, "Hello")
        print(reply.reply_text, reply.tokens_used)
    """

    def __init__(self, providers: Optional[Iterable[BaseLLMProvider]] = None):
        self._providers: dict[ProviderType, BaseLLMProvider] = {}
        for provider in providers or ():
            self.register(provider)

    def register(self, provider: BaseLLMProvider) -> None:
        """Bind a provider to its ProviderType, replacing any previous one."""
        self._providers[provider.provider_type] = provider
        logger.info(f"Provider registered: {provider.name}")

    @property
    def available(self) -> list[ProviderType]:
        return list(self._providers)

    def supports(self, provider_type: ProviderType) -> bool:
        return provider_type in self._providers

    async def dispatch(self, agent: Agent, user_text: str) -> ProviderReply:
        provider = self._providers.get(agent.provider)
        if provider is None:
            logger.error(
                f"Agent {agent.id} needs provider '{agent.provider.value}' "
                f"which is not configured"
            )
            raise ProviderError(
                f"No backend configured for provider '{agent.provider.value}'",
                error_type=ErrorType.FATAL,
                provider=agent.provider.value,
            )

        request = provider.create_request(
            model=agent.model,
            system_prompt=agent.system_prompt,
            user_text=user_text,
        )

        started = time.monotonic()
        reply = await provider.complete(request)
        latency_ms = int((time.monotonic() - started) * 1000)

        logger.info(
            f"Agent {agent.id} answered via {provider.name}/{agent.model}: "
            f"{reply.tokens_used} tokens in {latency_ms}ms"
        )
        return reply

    async def close(self) -> None:
        for provider in self._providers.values():
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Error closing provider {provider.name}: {e}")
