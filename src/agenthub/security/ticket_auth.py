"""
WebSocket Ticket Authentication.

Provides ticket-based authentication for real-time connections.
Tickets are:
- One-time use (consumed on validation)
- Short-lived (60 second TTL by default)
- Bound to the user identity from the JWT used to request them

Never pass the JWT itself in the WebSocket URL; the client exchanges it
for a ticket over an authenticated HTTP call and connects with that.
"""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
import time
from dataclasses import dataclass, field
from typing import Optional

from ..domain.entities import UserContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebSocketTicket:
    """A WebSocket authentication ticket.

    Attributes:
        ticket: The ticket string (secret)
        user_id: User identifier
        email: Email claim carried over from the JWT
        username: Username claim carried over from the JWT
        session_id: Session identifier for tracking
        created_at: Creation timestamp (Unix time)
    """

    ticket: str
    user_id: str
    email: Optional[str] = None
    username: Optional[str] = None
    session_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def is_expired(self, max_age_seconds: float) -> bool:
        return time.time() - self.created_at > max_age_seconds

    def to_context(self) -> UserContext:
        return UserContext(
            user_id=self.user_id,
            email=self.email,
            username=self.username,
            session_id=self.session_id,
        )


class WebSocketTicketAuth:
    """In-process WebSocket ticket service.

    Usage:
        # Create ticket (in REST endpoint, before WS connection)
        auth = WebSocketTicketAuth()
        ticket = await auth.create_ticket(context)

        # Validate ticket (in WebSocket handler)
        ticket_data = await auth.validate_ticket(ticket)
        if not ticket_data:
            await websocket.close(code=4001, reason="Invalid ticket")
    """

    DEFAULT_TTL = int(os.getenv("WS_TICKET_TTL_SECONDS", "60"))

    def __init__(self, ttl: int = DEFAULT_TTL):
        """Initialize ticket auth service.

        Args:
            ttl: Ticket TTL in seconds
        """
        self.ttl = ttl
        self._tickets: dict[str, WebSocketTicket] = {}
        self._lock = asyncio.Lock()

    async def create_ticket(self, context: UserContext) -> str:
        """Issue a ticket for an authenticated user.

        Returns:
            The ticket string to pass to the WebSocket connection
        """
        ticket_str = secrets.token_urlsafe(32)

        async with self._lock:
            self._purge_expired()
            self._tickets[ticket_str] = WebSocketTicket(
                ticket=ticket_str,
                user_id=context.user_id,
                email=context.email,
                username=context.username,
                session_id=context.session_id,
            )

        return ticket_str

    async def validate_ticket(self, ticket: Optional[str]) -> Optional[WebSocketTicket]:
        """Validate and consume a ticket (one-time use).

        Returns:
            WebSocketTicket if valid, None if invalid/expired/consumed
        """
        if not ticket:
            return None

        async with self._lock:
            ticket_data = self._tickets.pop(ticket, None)

        if ticket_data is None:
            return None

        if not secrets.compare_digest(ticket_data.ticket, ticket):
            return None

        if ticket_data.is_expired(self.ttl):
            logger.debug(f"Rejected expired ticket for user {ticket_data.user_id}")
            return None

        return ticket_data

    async def revoke_ticket(self, ticket: str) -> bool:
        """Revoke a ticket before use.

        Returns:
            True if ticket was revoked, False if not found
        """
        if not ticket:
            return False

        async with self._lock:
            return self._tickets.pop(ticket, None) is not None

    def _purge_expired(self) -> None:
        expired = [
            key for key, data in self._tickets.items() if data.is_expired(self.ttl)
        ]
        for key in expired:
            del self._tickets[key]

    def __len__(self) -> int:
        return len(self._tickets)
