"""
Pydantic schemas for the chat API.

Wire names are camelCase; Python attributes stay snake_case.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..domain.entities import Agent, Message, ProviderType, UsageCounters


class CamelModel(BaseModel):
    """Base model that accepts and emits camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Chat Schemas
# =============================================================================


class ChatRequest(CamelModel):
    """Request to run one chat turn.

    Field contents are checked by the orchestrator so both gateways
    reject the same inputs the same way.
    """

    agent_id: Optional[str] = Field(None, alias="agentId")
    message: Optional[str] = None
    conversation_id: Optional[str] = Field(None, alias="conversationId")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "agentId": "general-assistant",
                "message": "Hello",
                "conversationId": None,
            }
        },
    )


class AgentRef(BaseModel):
    id: str
    name: str


class ChatResponse(CamelModel):
    """Reply to a completed chat turn."""

    response: str
    conversation_id: str = Field(..., alias="conversationId")
    tokens: int
    agent: AgentRef


# =============================================================================
# Agent Schemas
# =============================================================================


class AgentResponse(CamelModel):
    """An agent definition."""

    id: str
    name: str
    description: str
    provider: ProviderType
    model: str
    system_prompt: str = Field(..., alias="systemPrompt")
    capabilities: list[str] = Field(default_factory=list)
    created_by: Optional[str] = Field(None, alias="createdBy")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    is_custom: bool = Field(False, alias="isCustom")

    @classmethod
    def from_agent(cls, agent: Agent) -> "AgentResponse":
        return cls(
            id=agent.id,
            name=agent.name,
            description=agent.description,
            provider=agent.provider,
            model=agent.model,
            system_prompt=agent.system_prompt,
            capabilities=list(agent.capabilities),
            created_by=agent.created_by,
            created_at=agent.created_at,
            is_custom=agent.is_custom,
        )


class CreateAgentRequest(CamelModel):
    """Request to register a user-defined agent."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=1000)
    provider: ProviderType
    model: str = Field(..., min_length=1, max_length=100)
    system_prompt: str = Field(..., alias="systemPrompt", max_length=10000)
    capabilities: list[str] = Field(default_factory=list)


class AgentListResponse(BaseModel):
    agents: list[AgentResponse]


# =============================================================================
# Conversation Schemas
# =============================================================================


class MessageResponse(CamelModel):
    """A message in a conversation."""

    role: str
    content: str
    timestamp: datetime
    author_connection_id: Optional[str] = Field(None, alias="authorConnectionId")

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        return cls(
            role=message.role.value,
            content=message.content,
            timestamp=message.timestamp,
            author_connection_id=message.author_connection_id,
        )


class ConversationResponse(CamelModel):
    """A conversation transcript."""

    conversation_id: str = Field(..., alias="conversationId")
    messages: list[MessageResponse]


class ConversationListResponse(CamelModel):
    conversation_ids: list[str] = Field(..., alias="conversationIds")
    total: int


# =============================================================================
# User Schemas
# =============================================================================


class UsageResponse(CamelModel):
    """Usage counters for the calling user."""

    user_id: str = Field(..., alias="userId")
    request_count: int = Field(..., alias="requestCount")
    token_count: int = Field(..., alias="tokenCount")

    @classmethod
    def from_usage(cls, user_id: str, usage: UsageCounters) -> "UsageResponse":
        return cls(
            user_id=user_id,
            request_count=usage.request_count,
            token_count=usage.token_count,
        )


# =============================================================================
# Realtime Schemas
# =============================================================================


class TicketResponse(CamelModel):
    """One-time WebSocket ticket."""

    ticket: str
    expires_in: int = Field(..., alias="expiresIn")


class ErrorResponse(BaseModel):
    """Body written by the chat service exception handlers."""

    error: str
    code: str
    details: Optional[dict[str, Any]] = None
