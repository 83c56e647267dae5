"""
Agent Registry.

Holds agent definitions in registration order. Built-in agents are
seeded by ``init()``; user-defined agents are added with ``register()``.
Agents are never updated or removed.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..domain.entities import Agent, ProviderType
from ..domain.exceptions import AgentNotFoundError, DuplicateAgentError
from ..domain.ports import IAgentRegistry

logger = logging.getLogger(__name__)


DEFAULT_AGENTS: tuple[Agent, ...] = (
    Agent(
        id="general-assistant",
        name="General Assistant",
        description="A helpful AI assistant for general questions",
        provider=ProviderType.OPENAI,
        model="gpt-4",
        system_prompt=(
            "You are a helpful AI assistant. Provide clear, accurate, "
            "and helpful responses."
        ),
        capabilities=("chat", "qa", "writing"),
    ),
    Agent(
        id="creative-writer",
        name="Creative Writer",
        description="Specialized in creative writing and storytelling",
        provider=ProviderType.ANTHROPIC,
        model="claude-3-sonnet-20240229",
        system_prompt=(
            "You are a creative writing expert. Help users develop stories, "
            "characters, and creative content."
        ),
        capabilities=("writing", "storytelling", "creative"),
    ),
    Agent(
        id="code-assistant",
        name="Code Assistant",
        description="Expert in programming and software development",
        provider=ProviderType.OPENAI,
        model="gpt-4",
        system_prompt=(
            "You are a programming expert. Help users with code, debugging, "
            "and software development questions."
        ),
        capabilities=("coding", "debugging", "software"),
    ),
    Agent(
        id="data-analyst",
        name="Data Analyst",
        description="Specialized in data analysis and insights",
        provider=ProviderType.ANTHROPIC,
        model="claude-3-sonnet-20240229",
        system_prompt=(
            "You are a data analysis expert. Help users understand data, "
            "create visualizations, and derive insights."
        ),
        capabilities=("data-analysis", "visualization", "insights"),
    ),
)


class AgentRegistry(IAgentRegistry):
    """In-memory agent registry.

    Usage:
        registry = AgentRegistry()
        await registry.init()  # seeds DEFAULT_AGENTS

        agent = await registry.get("general-assistant")
        agents = await registry.list()
    """

    def __init__(self, seed: Optional[Iterable[Agent]] = None):
        """Initialize the registry.

        Args:
            seed: Agents to load on ``init()``; DEFAULT_AGENTS if omitted
        """
        self._seed = tuple(DEFAULT_AGENTS if seed is None else seed)
        self._agents: dict[str, Agent] = {}

    async def init(self) -> None:
        for agent in self._seed:
            if agent.id not in self._agents:
                self._agents[agent.id] = agent
        logger.info(f"Agent registry ready with {len(self._agents)} agents")

    async def register(self, agent: Agent) -> Agent:
        if agent.id in self._agents:
            raise DuplicateAgentError(agent.id)

        self._agents[agent.id] = agent
        logger.info(
            f"Registered agent {agent.id} ({agent.provider.value}/{agent.model})"
        )
        return agent

    async def get(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    async def list(self) -> list[Agent]:
        return list(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)
