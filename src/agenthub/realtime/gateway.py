"""
Real-time Gateway.

Room membership and fan-out for persistent connections. A room is the set
of connections subscribed to one conversation id.

Fan-out rules for an inbound send:
- user-message goes to every other member of the room (the sender already
  shows its own message)
- ai-response goes to every member, sender included
- error goes to the sender only

Every connection has its own outbox drained by a writer task, so a slow
or stalled socket only delays its own events. Turns never wait on
delivery, and turns on one conversation run in arrival order.

The gateway knows nothing about the transport. Anything with an ``id`` and
an ``async send(event, data)`` can be a connection.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Optional, Protocol

from ..domain.entities import Message, UserContext
from ..domain.exceptions import (
    AgentNotFoundError,
    ChatServiceError,
    ProviderError,
    ValidationError,
)
from ..orchestrator.chat import ChatOrchestrator

logger = logging.getLogger(__name__)


# Event names
EVENT_JOIN = "join-conversation"
EVENT_LEAVE = "leave-conversation"
EVENT_SEND = "send-message"
EVENT_PING = "ping"

EVENT_USER_MESSAGE = "user-message"
EVENT_AI_RESPONSE = "ai-response"
EVENT_ERROR = "error"
EVENT_PONG = "pong"


class Connection(Protocol):
    """A persistent client connection."""

    id: str

    async def send(self, event: str, data: dict[str, Any]) -> None:
        ...


def error_payload(
    code: str,
    message: str,
    conversation_id: Optional[str] = None,
) -> dict[str, Any]:
    """Build the data of an ``error`` event."""
    payload: dict[str, Any] = {"code": code, "message": message}
    if conversation_id:
        payload["conversationId"] = conversation_id
    return payload


def _describe_failure(error: Exception) -> tuple[str, str]:
    """Map a turn failure to a client-safe (code, message) pair."""
    if isinstance(error, ValidationError):
        return "validation_error", error.message
    if isinstance(error, AgentNotFoundError):
        return "agent_not_found", error.message
    if isinstance(error, ProviderError):
        return "provider_error", "Failed to get response from AI"
    return "internal_error", "Internal server error"


class RealtimeGateway:
    """Room membership and broadcast over persistent connections.

    Usage:
        gateway = RealtimeGateway(orchestrator)

        gateway.connect(conn, context)
        gateway.join(conn, "conv-123")
        gateway.spawn_send(conn, {"agentId": "general-assistant",
                                  "message": "Hi",
                                  "conversationId": "conv-123"})
        ...
        gateway.disconnect(conn)
        await gateway.drain()
    """

    def __init__(self, orchestrator: ChatOrchestrator):
        self.orchestrator = orchestrator
        self._connections: dict[str, Connection] = {}
        self._contexts: dict[str, Optional[UserContext]] = {}
        self._rooms: dict[str, set[str]] = defaultdict(set)
        self._memberships: dict[str, set[str]] = defaultdict(set)
        self._tasks: set[asyncio.Task] = set()
        self._outboxes: dict[str, asyncio.Queue] = {}
        self._writers: dict[str, asyncio.Task] = {}

    # ----------------------------------------
    # Connection lifecycle
    # ----------------------------------------

    def connect(self, connection: Connection, context: Optional[UserContext] = None) -> None:
        """Register a live connection and the identity it authenticated as."""
        self._connections[connection.id] = connection
        self._contexts[connection.id] = context
        self._outboxes[connection.id] = asyncio.Queue()
        logger.info(
            f"Realtime connection opened: {connection.id} "
            f"user={context.user_id if context else None}"
        )

    def disconnect(self, connection: Connection) -> None:
        """Forget a connection and remove it from every room it joined.

        Turns it already started keep running; their events are simply
        not delivered to it. Undelivered events in its outbox are dropped.
        """
        for conversation_id in list(self._memberships.get(connection.id, ())):
            self._remove_member(connection.id, conversation_id)
        self._memberships.pop(connection.id, None)
        self._connections.pop(connection.id, None)
        self._contexts.pop(connection.id, None)
        self._outboxes.pop(connection.id, None)
        writer = self._writers.pop(connection.id, None)
        if writer is not None:
            writer.cancel()
        logger.info(f"Realtime connection closed: {connection.id}")

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    # ----------------------------------------
    # Rooms
    # ----------------------------------------

    def join(self, connection: Connection, conversation_id: str) -> None:
        """Subscribe a connection to a conversation. Joining twice is a no-op."""
        if not isinstance(conversation_id, str) or not conversation_id.strip():
            raise ValidationError(
                "conversationId must be a non-empty string",
                field="conversationId",
            )
        self._rooms[conversation_id].add(connection.id)
        self._memberships[connection.id].add(conversation_id)
        logger.debug(f"{connection.id} joined {conversation_id}")

    def leave(self, connection: Connection, conversation_id: str) -> None:
        """Unsubscribe a connection. Leaving a room it is not in is a no-op."""
        self._remove_member(connection.id, conversation_id)
        memberships = self._memberships.get(connection.id)
        if memberships is not None:
            memberships.discard(conversation_id)
            if not memberships:
                del self._memberships[connection.id]
        logger.debug(f"{connection.id} left {conversation_id}")

    def members(self, conversation_id: str) -> frozenset[str]:
        """Connection ids currently subscribed to a conversation."""
        return frozenset(self._rooms.get(conversation_id, ()))

    def rooms_of(self, connection: Connection) -> frozenset[str]:
        """Conversation ids a connection is subscribed to."""
        return frozenset(self._memberships.get(connection.id, ()))

    def _remove_member(self, connection_id: str, conversation_id: str) -> None:
        room = self._rooms.get(conversation_id)
        if room is None:
            return
        room.discard(connection_id)
        if not room:
            del self._rooms[conversation_id]

    # ----------------------------------------
    # Inbound send
    # ----------------------------------------

    def spawn_send(self, connection: Connection, payload: Any) -> asyncio.Task:
        """Run ``on_inbound_send`` in the background and track the task."""
        task = asyncio.create_task(self.on_inbound_send(connection, payload))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Realtime send task failed: {exc}", exc_info=exc)

    async def drain(self) -> None:
        """Wait for every in-flight turn to finish and its events to be written."""
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} in-flight realtime turns")
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.flush()

    async def on_inbound_send(self, connection: Connection, payload: Any) -> None:
        """Handle a ``send-message`` event from a connection.

        The sender is added to the room, the other members see the user
        message once it is in the transcript, and once the turn completes
        every member gets the reply. Failures are reported to the sender
        alone.
        """
        conversation_id: Optional[str] = None

        try:
            if not isinstance(payload, dict):
                raise ValidationError("send-message payload must be an object")

            agent_id = payload.get("agentId")
            user_text = payload.get("message")
            conversation_id = payload.get("conversationId")

            self.orchestrator.validate(agent_id, user_text, conversation_id)
            agent = await self.orchestrator.agents.get(agent_id)

            conversation_id = conversation_id or self.orchestrator.mint_conversation_id()
            if self.is_connected(connection.id):
                self.join(connection, conversation_id)

            room = conversation_id

            async def announce(message: Message) -> None:
                self._broadcast(
                    room,
                    EVENT_USER_MESSAGE,
                    {
                        "conversationId": room,
                        "agentId": agent.id,
                        "message": message.content,
                        "authorConnectionId": connection.id,
                        "timestamp": message.timestamp.isoformat(),
                    },
                    exclude=connection.id,
                )

            context = self._contexts.get(connection.id)
            result = await self.orchestrator.handle_turn(
                agent_id=agent.id,
                user_text=user_text,
                conversation_id=conversation_id,
                user_id=context.user_id if context else None,
                connection_id=connection.id,
                on_user_message=announce,
            )

        except ChatServiceError as e:
            logger.info(f"Realtime turn from {connection.id} failed: {e.to_dict()}")
            code, message = _describe_failure(e)
            self._send_to(connection.id, EVENT_ERROR, error_payload(code, message, conversation_id))
            return
        except Exception as e:
            logger.exception(f"Unexpected realtime failure: {e}")
            self._send_to(
                connection.id,
                EVENT_ERROR,
                error_payload("internal_error", "Internal server error", conversation_id),
            )
            return

        self._broadcast(
            result.conversation_id,
            EVENT_AI_RESPONSE,
            {
                "conversationId": result.conversation_id,
                "response": result.reply_text,
                "tokens": result.tokens_used,
                "agent": result.agent.to_dict(),
                "timestamp": result.timestamp.isoformat() if result.timestamp else None,
            },
        )

    # ----------------------------------------
    # Delivery
    # ----------------------------------------

    def _broadcast(
        self,
        conversation_id: str,
        event: str,
        data: dict[str, Any],
        exclude: Optional[str] = None,
    ) -> None:
        for connection_id in self.members(conversation_id):
            if connection_id != exclude:
                self._send_to(connection_id, event, data)

    def _send_to(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        """Queue an event for a connection. Departed connections are skipped."""
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            return
        outbox.put_nowait((event, data))
        if connection_id not in self._writers:
            connection = self._connections[connection_id]
            self._writers[connection_id] = asyncio.create_task(
                self._write_loop(connection, outbox)
            )

    async def _write_loop(self, connection: Connection, outbox: asyncio.Queue) -> None:
        while True:
            event, data = await outbox.get()
            try:
                await connection.send(event, data)
            except Exception as e:
                # One broken socket must not stop delivery to the rest of the room
                logger.warning(f"Dropping {event} for {connection.id}: {e}")
            finally:
                outbox.task_done()

    async def flush(self) -> None:
        """Wait until every queued event has been written."""
        outboxes = list(self._outboxes.values())
        if outboxes:
            await asyncio.gather(*(outbox.join() for outbox in outboxes))

    async def close(self) -> None:
        """Stop every writer task. Events still queued are dropped."""
        writers = list(self._writers.values())
        self._writers.clear()
        for writer in writers:
            writer.cancel()
        if writers:
            await asyncio.gather(*writers, return_exceptions=True)
