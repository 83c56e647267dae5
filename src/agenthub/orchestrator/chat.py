"""
Chat Orchestrator.

The single code path for a chat turn, shared by the HTTP endpoint and the
real-time gateway:

    received -> agent_resolved -> provider_called -> appended -> completed
        \\-> failed (from any step)

A turn holds its conversation's serialization token from the user append
to the assistant append, so turns on one conversation never interleave
while turns on different conversations run in parallel.
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..domain.entities import (
    Message,
    MessageRole,
    TurnResult,
    TurnState,
)
from ..domain.exceptions import ChatServiceError, ValidationError
from ..domain.ports import (
    IAgentRegistry,
    IConversationStore,
    IProviderDispatcher,
    IUserStore,
)
from .resilience import retry_async

logger = logging.getLogger(__name__)


MAX_MESSAGE_LENGTH = 10000
MAX_CONVERSATION_ID_LENGTH = 200


@dataclass
class OrchestratorConfig:
    """Configuration for the chat orchestrator.

    Attributes:
        provider_max_attempts: Provider attempts per turn (1 = no retry)
        retry_initial_delay: Seconds before the first provider retry
        max_message_length: Longest accepted user message
    """

    provider_max_attempts: int = int(os.getenv("PROVIDER_MAX_ATTEMPTS", "1"))
    retry_initial_delay: float = float(os.getenv("PROVIDER_RETRY_DELAY_SECONDS", "0.5"))
    max_message_length: int = MAX_MESSAGE_LENGTH


class ChatOrchestrator:
    """Runs chat turns.

    Usage:
        orchestrator = ChatOrchestrator(
            agents=registry,
            dispatcher=dispatcher,
            conversations=conversation_store,
            users=user_store,
        )

        result = await orchestrator.handle_turn(
            agent_id="general-assistant",
            user_text="Hello",
            user_id=context.user_id,
        )
        print(result.conversation_id, result.reply_text)
    """

    def __init__(
        self,
        agents: IAgentRegistry,
        dispatcher: IProviderDispatcher,
        conversations: IConversationStore,
        users: Optional[IUserStore] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        """Initialize the orchestrator.

        Args:
            agents: Registry used to resolve agent ids
            dispatcher: Provider dispatcher
            conversations: Transcript store (and its serialization tokens)
            users: Store receiving usage updates after successful turns
            config: Orchestrator configuration
        """
        self.agents = agents
        self.dispatcher = dispatcher
        self.conversations = conversations
        self.users = users
        self.config = config or OrchestratorConfig()

    @staticmethod
    def mint_conversation_id() -> str:
        """Return a fresh, unique conversation id."""
        return f"conv-{uuid.uuid4().hex}"

    def validate(
        self,
        agent_id: Any,
        user_text: Any,
        conversation_id: Any = None,
    ) -> None:
        """Reject malformed turn input before anything is resolved.

        Raises:
            ValidationError: If a field is missing or malformed
        """
        if not isinstance(agent_id, str) or not agent_id.strip():
            raise ValidationError("agentId is required", field="agentId")

        if not isinstance(user_text, str) or not user_text.strip():
            raise ValidationError("message is required", field="message")

        if len(user_text) > self.config.max_message_length:
            raise ValidationError(
                f"message exceeds {self.config.max_message_length} characters",
                field="message",
            )

        if conversation_id is not None:
            if not isinstance(conversation_id, str) or not conversation_id.strip():
                raise ValidationError(
                    "conversationId must be a non-empty string",
                    field="conversationId",
                )
            if len(conversation_id) > MAX_CONVERSATION_ID_LENGTH:
                raise ValidationError(
                    f"conversationId exceeds {MAX_CONVERSATION_ID_LENGTH} characters",
                    field="conversationId",
                )

    async def handle_turn(
        self,
        agent_id: str,
        user_text: str,
        conversation_id: Optional[str] = None,
        user_id: Optional[str] = None,
        connection_id: Optional[str] = None,
        on_user_message: Optional[Callable[[Message], Awaitable[None]]] = None,
    ) -> TurnResult:
        """Run one chat turn end to end.

        Args:
            agent_id: Agent to answer with
            user_text: The user's message
            conversation_id: Conversation to continue; a new one if omitted
            user_id: User whose usage is charged
            connection_id: Real-time connection that sent the message
            on_user_message: Awaited with the user message right after it is
                appended, while the conversation token is still held

        Returns:
            TurnResult with the reply and the (possibly minted) conversation id

        Raises:
            ValidationError: Malformed input, nothing mutated
            AgentNotFoundError: Unknown agent, nothing mutated
            ProviderError: Backend failed; the user message stays appended
        """
        turn_id = uuid.uuid4().hex[:8]
        state = self._transition(turn_id, TurnState.RECEIVED)

        try:
            self.validate(agent_id, user_text, conversation_id)
            agent = await self.agents.get(agent_id)
            state = self._transition(turn_id, TurnState.AGENT_RESOLVED)

            conversation_id = conversation_id or self.mint_conversation_id()

            async with self.conversations.locks.hold(conversation_id):
                user_message = Message(
                    role=MessageRole.USER,
                    content=user_text,
                    author_connection_id=connection_id,
                )
                await self.conversations.append(conversation_id, user_message)
                if on_user_message is not None:
                    await on_user_message(user_message)

                reply = await retry_async(
                    self.dispatcher.dispatch,
                    agent,
                    user_text,
                    max_attempts=self.config.provider_max_attempts,
                    initial_delay=self.config.retry_initial_delay,
                )
                state = self._transition(turn_id, TurnState.PROVIDER_CALLED)

                assistant_message = Message(role=MessageRole.ASSISTANT, content=reply.reply_text)
                await self.conversations.append(conversation_id, assistant_message)
                state = self._transition(turn_id, TurnState.APPENDED)

                if self.users and user_id:
                    await self.users.record_usage(user_id, reply.tokens_used)

        except ChatServiceError as e:
            self._transition(turn_id, TurnState.FAILED)
            logger.warning(f"Turn {turn_id} failed after {state.value}: {e}")
            raise

        self._transition(turn_id, TurnState.COMPLETED)
        logger.info(
            f"Turn {turn_id} completed: agent={agent.id} "
            f"conversation={conversation_id} tokens={reply.tokens_used}"
        )

        return TurnResult(
            reply_text=reply.reply_text,
            conversation_id=conversation_id,
            tokens_used=reply.tokens_used,
            agent=agent.summary(),
            timestamp=assistant_message.timestamp,
        )

    @staticmethod
    def _transition(turn_id: str, state: TurnState) -> TurnState:
        logger.debug(f"Turn {turn_id} -> {state.value}")
        return state
