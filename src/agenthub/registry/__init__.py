"""Agent definitions."""

from .agents import DEFAULT_AGENTS, AgentRegistry

__all__ = ["AgentRegistry", "DEFAULT_AGENTS"]
