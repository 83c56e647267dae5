"""
FastAPI routers for the chat service.

Provides the REST endpoints (request gateway) and the WebSocket handler
that feeds the real-time gateway. Both call the same ChatOrchestrator.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Optional

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)

from ..domain.entities import Agent, UserContext
from ..domain.exceptions import ChatServiceError, ValidationError
from ..domain.ports import IAgentRegistry, IConversationStore, IUserStore
from ..orchestrator import ChatOrchestrator
from ..realtime import (
    EVENT_ERROR,
    EVENT_JOIN,
    EVENT_LEAVE,
    EVENT_PING,
    EVENT_PONG,
    EVENT_SEND,
    RealtimeGateway,
    error_payload,
)
from ..security import (
    RateLimitExceededError,
    WebSocketTicketAuth,
    enforce_rate_limit,
    get_rate_limiter,
)
from ..security.rate_limiter import client_key_for
from .auth import DEV_PAYLOAD, JWTConfig, get_user_context
from .schemas import (
    AgentListResponse,
    AgentResponse,
    ChatRequest,
    ChatResponse,
    ConversationListResponse,
    ConversationResponse,
    CreateAgentRequest,
    ErrorResponse,
    MessageResponse,
    TicketResponse,
    UsageResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["chat"],
    dependencies=[Depends(enforce_rate_limit)],
)
realtime_router = APIRouter(tags=["realtime"])

# Documented error bodies for endpoints that run through the orchestrator
CHAT_ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
}


# =============================================================================
# Dependencies
# =============================================================================


class ChatDependencies:
    """Container for chat service dependencies.

    Injected at application startup.
    """

    orchestrator: Optional[ChatOrchestrator] = None
    agents: Optional[IAgentRegistry] = None
    conversations: Optional[IConversationStore] = None
    users: Optional[IUserStore] = None
    ticket_auth: Optional[WebSocketTicketAuth] = None
    gateway: Optional[RealtimeGateway] = None


_deps = ChatDependencies()


def create_chat_dependencies(
    orchestrator: ChatOrchestrator,
    users: IUserStore,
    ticket_auth: Optional[WebSocketTicketAuth] = None,
    gateway: Optional[RealtimeGateway] = None,
) -> ChatDependencies:
    """Initialize chat dependencies.

    Call this at application startup.

    Args:
        orchestrator: The chat orchestrator (carries registry and store)
        users: User store for usage counters
        ticket_auth: Ticket service for WebSocket connections
        gateway: Real-time gateway; one is built around the orchestrator if omitted
    """
    _deps.orchestrator = orchestrator
    _deps.agents = orchestrator.agents
    _deps.conversations = orchestrator.conversations
    _deps.users = users
    _deps.ticket_auth = ticket_auth
    _deps.gateway = gateway or RealtimeGateway(orchestrator)
    return _deps


def get_dependencies() -> ChatDependencies:
    return _deps


def get_orchestrator() -> ChatOrchestrator:
    """Get the chat orchestrator dependency."""
    if not _deps.orchestrator:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat service not initialized",
        )
    return _deps.orchestrator


def get_users() -> IUserStore:
    if not _deps.users:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat service not initialized",
        )
    return _deps.users


# =============================================================================
# Chat
# =============================================================================


@router.post("/chat", response_model=ChatResponse, responses=CHAT_ERROR_RESPONSES)
async def chat(
    request: ChatRequest,
    context: UserContext = Depends(get_user_context),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    users: IUserStore = Depends(get_users),
) -> ChatResponse:
    """Run one chat turn and return the agent's reply."""
    await users.ensure(context)

    result = await orchestrator.handle_turn(
        agent_id=request.agent_id,
        user_text=request.message,
        conversation_id=request.conversation_id,
        user_id=context.user_id,
    )

    return ChatResponse(
        response=result.reply_text,
        conversation_id=result.conversation_id,
        tokens=result.tokens_used,
        agent=result.agent.to_dict(),
    )


# =============================================================================
# Agents
# =============================================================================


@router.get("/agents", response_model=AgentListResponse)
async def list_agents(
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> AgentListResponse:
    """List all agents in registration order. Public."""
    agents = await orchestrator.agents.list()
    return AgentListResponse(agents=[AgentResponse.from_agent(a) for a in agents])


@router.post(
    "/agents",
    response_model=AgentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
)
async def create_agent(
    request: CreateAgentRequest,
    context: UserContext = Depends(get_user_context),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> AgentResponse:
    """Register a user-defined agent."""
    agent = Agent(
        id=f"agent-{uuid.uuid4().hex[:12]}",
        name=request.name,
        description=request.description,
        provider=request.provider,
        model=request.model,
        system_prompt=request.system_prompt,
        capabilities=tuple(request.capabilities),
        created_by=context.user_id,
        created_at=datetime.now(UTC),
        is_custom=True,
    )
    agent = await orchestrator.agents.register(agent)
    logger.info(f"User {context.user_id} created agent {agent.id}")
    return AgentResponse.from_agent(agent)


# =============================================================================
# Conversations
# =============================================================================


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    context: UserContext = Depends(get_user_context),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ConversationListResponse:
    """List conversation ids in creation order."""
    conversation_ids = await orchestrator.conversations.list()
    return ConversationListResponse(
        conversation_ids=conversation_ids,
        total=len(conversation_ids),
    )


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    context: UserContext = Depends(get_user_context),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ConversationResponse:
    """Get a conversation transcript in append order."""
    messages = await orchestrator.conversations.read(conversation_id)
    if not messages:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )

    return ConversationResponse(
        conversation_id=conversation_id,
        messages=[MessageResponse.from_message(m) for m in messages],
    )


# =============================================================================
# Users
# =============================================================================


@router.get("/users/me/usage", response_model=UsageResponse)
async def get_my_usage(
    context: UserContext = Depends(get_user_context),
    users: IUserStore = Depends(get_users),
) -> UsageResponse:
    """Usage counters for the calling user."""
    account = await users.ensure(context)
    return UsageResponse.from_usage(account.user_id, account.usage)


# =============================================================================
# Realtime ticket
# =============================================================================


@router.post("/realtime/ticket", response_model=TicketResponse)
async def get_websocket_ticket(
    context: UserContext = Depends(get_user_context),
) -> TicketResponse:
    """Get a one-time ticket for the WebSocket connection.

    Exchange the JWT for a short-lived ticket, then connect with
    ``/ws?ticket=<ticket>``.
    """
    if not _deps.ticket_auth:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="WebSocket authentication not configured",
        )

    ticket = await _deps.ticket_auth.create_ticket(context)
    return TicketResponse(ticket=ticket, expires_in=_deps.ticket_auth.ttl)


# =============================================================================
# WebSocket Handler
# =============================================================================


class WebSocketConnection:
    """Adapts a FastAPI WebSocket to the gateway's Connection protocol.

    Frames are JSON objects of the form ``{"event": name, "data": payload}``.
    """

    def __init__(self, websocket: WebSocket):
        self.id = f"ws-{uuid.uuid4().hex[:12]}"
        self.websocket = websocket
        # Replies from concurrent turns share one socket
        self._send_lock = asyncio.Lock()

    async def send(self, event: str, data: dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_json({"event": event, "data": data})


def _conversation_id_from(data: Any) -> Any:
    if isinstance(data, dict):
        return data.get("conversationId")
    return data


async def _handle_frame(
    gateway: RealtimeGateway,
    connection: WebSocketConnection,
    frame: Any,
) -> None:
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        raise ValidationError("Frames must be objects with an 'event' name")

    event = frame["event"]
    data = frame.get("data")

    if event == EVENT_JOIN:
        gateway.join(connection, _conversation_id_from(data))

    elif event == EVENT_LEAVE:
        gateway.leave(connection, _conversation_id_from(data))

    elif event == EVENT_SEND:
        try:
            await get_rate_limiter().check_rate_limit(client_key_for(connection.websocket))
        except RateLimitExceededError as e:
            await connection.send(
                EVENT_ERROR,
                {**error_payload("rate_limited", e.detail), "retryAfter": e.retry_after},
            )
            return
        gateway.spawn_send(connection, data)

    elif event == EVENT_PING:
        await connection.send(EVENT_PONG, {})

    else:
        raise ValidationError(f"Unknown event: {event}")


@realtime_router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    ticket: Optional[str] = Query(None, description="One-time ticket from /api/realtime/ticket"),
):
    """WebSocket endpoint for real-time chat.

    Connection flow:
    1. Client authenticates via JWT and calls POST /api/realtime/ticket
    2. Client connects to ws://host/ws?ticket=XXX
    3. Server validates and consumes ticket (one-time use)
    4. Client joins rooms and sends messages

    Message formats:
    - Client -> Server:
        {"event": "join-conversation", "data": "<conversationId>"}
        {"event": "leave-conversation", "data": "<conversationId>"}
        {"event": "send-message", "data": {"agentId": "...", "message": "...", "conversationId": "..."}}
        {"event": "ping"}

    - Server -> Client:
        {"event": "user-message", "data": {...}}
        {"event": "ai-response", "data": {...}}
        {"event": "error", "data": {"code": "...", "message": "..."}}
        {"event": "pong", "data": {}}
    """
    gateway = _deps.gateway
    if not gateway:
        logger.error("Realtime gateway not configured")
        await websocket.close(code=4003, reason="Realtime gateway not configured")
        return

    context: Optional[UserContext] = None
    if ticket and _deps.ticket_auth:
        # Validate and consume ticket (one-time use)
        ticket_data = await _deps.ticket_auth.validate_ticket(ticket)
        if ticket_data:
            context = ticket_data.to_context()
    elif not ticket and not JWTConfig.REQUIRE_AUTH:
        context = DEV_PAYLOAD.to_context()

    if context is None:
        logger.warning("Invalid or expired WebSocket ticket")
        await websocket.close(code=4001, reason="Invalid or expired ticket")
        return

    await websocket.accept()

    if _deps.users:
        await _deps.users.ensure(context)

    connection = WebSocketConnection(websocket)
    gateway.connect(connection, context)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                await _handle_frame(gateway, connection, json.loads(raw))
            except json.JSONDecodeError:
                await connection.send(
                    EVENT_ERROR,
                    error_payload("validation_error", "Frames must be valid JSON"),
                )
            except ChatServiceError as e:
                await connection.send(
                    EVENT_ERROR,
                    error_payload("validation_error", e.message),
                )

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: user={context.user_id}")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
        try:
            await connection.send(
                EVENT_ERROR,
                error_payload("internal_error", "Internal server error"),
            )
            await websocket.close(code=1011)
        except Exception as send_error:
            logger.debug(f"Could not report WebSocket error to client: {send_error}")
    finally:
        gateway.disconnect(connection)
