"""LLM provider implementations and the dispatcher that selects them."""

from .base import BaseLLMProvider, LLMProviderConfig, ProviderRequest
from .anthropic import AnthropicProvider
from .openai import OpenAIProvider
from .dispatcher import ProviderDispatcher

__all__ = [
    "BaseLLMProvider",
    "LLMProviderConfig",
    "ProviderRequest",
    "AnthropicProvider",
    "OpenAIProvider",
    "ProviderDispatcher",
]
