"""
End-to-end tests for the HTTP and WebSocket gateways.

The app is built with an in-process dispatcher so no provider is called;
everything else (auth, rate limiting, stores, orchestrator, gateway) is
the real wiring from ``create_app``.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from agenthub.api.auth import JWTConfig
from agenthub.app import create_app
from agenthub.domain import ErrorType, IProviderDispatcher, ProviderError, ProviderReply
from agenthub.maintenance import MaintenanceConfig
from agenthub.orchestrator import OrchestratorConfig
from agenthub.security import RateLimitConfig


JWT_SECRET = "test-secret-key-for-testing-only"


class EchoDispatcher(IProviderDispatcher):
    """Replies with the agent name and the user text."""

    def __init__(self):
        self.error = None
        self.calls = 0

    async def dispatch(self, agent, user_text: str) -> ProviderReply:
        self.calls += 1
        if self.error:
            raise self.error
        return ProviderReply(reply_text=f"[{agent.id}] {user_text}", tokens_used=12)


def make_token(sub: str = "user123", **claims) -> str:
    payload = {
        "sub": sub,
        "email": f"{sub}@example.com",
        "username": sub,
        "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp()),
        **claims,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def auth_headers(sub: str = "user123") -> dict:
    return {"Authorization": f"Bearer {make_token(sub)}"}


@pytest.fixture(autouse=True)
def jwt_config():
    with patch.object(JWTConfig, "SECRET", JWT_SECRET), \
         patch.object(JWTConfig, "ALGORITHM", "HS256"), \
         patch.object(JWTConfig, "ISSUER", None), \
         patch.object(JWTConfig, "AUDIENCE", None), \
         patch.object(JWTConfig, "REQUIRE_AUTH", True):
        yield


@pytest.fixture
def dispatcher():
    return EchoDispatcher()


@pytest.fixture
def maintenance_config(monkeypatch):
    monkeypatch.delenv("MAINTENANCE_ON_STARTUP", raising=False)
    return MaintenanceConfig()


@pytest.fixture
def app(dispatcher, maintenance_config):
    return create_app(
        dispatcher=dispatcher,
        orchestrator_config=OrchestratorConfig(provider_max_attempts=1, retry_initial_delay=0),
        maintenance_config=maintenance_config,
        rate_limit_config=RateLimitConfig(requests_per_window=1000, window_seconds=900),
    )


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


# ============================================
# Health
# ============================================


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert body["agents"] == 4
        assert body["maintenance"]["totalRuns"] == 0
        assert "timestamp" in body


# ============================================
# Chat
# ============================================


class TestChat:
    """Tests for POST /api/chat."""

    def test_chat_new_conversation(self, client):
        response = client.post(
            "/api/chat",
            json={"agentId": "general-assistant", "message": "Hello"},
            headers=auth_headers(),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "[general-assistant] Hello"
        assert body["tokens"] == 12
        assert body["agent"] == {"id": "general-assistant", "name": "General Assistant"}
        assert body["conversationId"].startswith("conv-")

    def test_chat_continues_conversation(self, client):
        first = client.post(
            "/api/chat",
            json={"agentId": "general-assistant", "message": "Hello"},
            headers=auth_headers(),
        ).json()
        client.post(
            "/api/chat",
            json={
                "agentId": "general-assistant",
                "message": "Again",
                "conversationId": first["conversationId"],
            },
            headers=auth_headers(),
        )

        transcript = client.get(
            f"/api/conversations/{first['conversationId']}", headers=auth_headers()
        ).json()
        assert [m["role"] for m in transcript["messages"]] == [
            "user",
            "assistant",
            "user",
            "assistant",
        ]
        assert transcript["messages"][0]["content"] == "Hello"

    def test_chat_requires_auth(self, client, dispatcher):
        response = client.post(
            "/api/chat", json={"agentId": "general-assistant", "message": "Hello"}
        )

        assert response.status_code == 401
        assert dispatcher.calls == 0

    def test_unknown_agent_is_404(self, client):
        response = client.post(
            "/api/chat",
            json={"agentId": "nonexistent-agent", "message": "Hello"},
            headers=auth_headers(),
        )

        assert response.status_code == 404
        assert response.json() == {
            "error": "Agent not found",
            "code": "AGENT_NOT_FOUND",
            "details": {"agent_id": "nonexistent-agent"},
        }
        assert client.get("/api/conversations", headers=auth_headers()).json()["total"] == 0

    @pytest.mark.parametrize(
        "body",
        [
            {"agentId": "general-assistant"},
            {"agentId": "general-assistant", "message": ""},
            {"message": "Hello"},
            {"agentId": "general-assistant", "message": "x" * 10001},
            {"agentId": "general-assistant", "message": ["not", "text"]},
        ],
    )
    def test_invalid_body_is_400(self, client, body):
        response = client.post("/api/chat", json=body, headers=auth_headers())

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_provider_failure_is_502_without_internals(self, client, dispatcher):
        dispatcher.error = ProviderError(
            "upstream said sk-secret-123 is invalid", error_type=ErrorType.FATAL
        )

        response = client.post(
            "/api/chat",
            json={"agentId": "general-assistant", "message": "Hello", "conversationId": "conv-1"},
            headers=auth_headers(),
        )

        assert response.status_code == 502
        assert response.json() == {
            "error": "Failed to get response from AI",
            "code": "PROVIDER_ERROR",
        }
        # The user message stays in the transcript
        transcript = client.get("/api/conversations/conv-1", headers=auth_headers()).json()
        assert [m["role"] for m in transcript["messages"]] == ["user"]

    def test_unexpected_error_is_generic_500(self, client, dispatcher):
        dispatcher.error = RuntimeError("database password is hunter2")

        response = client.post(
            "/api/chat",
            json={"agentId": "general-assistant", "message": "Hello"},
            headers=auth_headers(),
        )

        assert response.status_code == 500
        assert "hunter2" not in response.text
        assert response.json()["code"] == "INTERNAL_ERROR"


# ============================================
# Agents
# ============================================


class TestAgents:
    """Tests for /api/agents."""

    def test_list_is_public(self, client):
        response = client.get("/api/agents")

        assert response.status_code == 200
        agents = response.json()["agents"]
        assert [a["id"] for a in agents] == [
            "general-assistant",
            "creative-writer",
            "code-assistant",
            "data-analyst",
        ]
        assert agents[1]["provider"] == "anthropic"
        assert agents[0]["systemPrompt"].startswith("You are a helpful AI assistant")
        assert agents[0]["isCustom"] is False

    def test_create_agent(self, client):
        response = client.post(
            "/api/agents",
            json={
                "name": "Poet",
                "description": "Writes poems",
                "provider": "anthropic",
                "model": "claude-3-sonnet-20240229",
                "systemPrompt": "You write short poems.",
                "capabilities": ["poetry"],
            },
            headers=auth_headers("alice"),
        )

        assert response.status_code == 201
        agent = response.json()
        assert agent["id"].startswith("agent-")
        assert agent["createdBy"] == "alice"
        assert agent["isCustom"] is True
        assert agent["createdAt"] is not None

        ids = [a["id"] for a in client.get("/api/agents").json()["agents"]]
        assert ids[-1] == agent["id"]

        # The new agent is usable right away
        chat = client.post(
            "/api/chat",
            json={"agentId": agent["id"], "message": "Rain"},
            headers=auth_headers("alice"),
        )
        assert chat.json()["agent"] == {"id": agent["id"], "name": "Poet"}

    def test_create_agent_requires_auth(self, client):
        response = client.post(
            "/api/agents",
            json={"name": "x", "provider": "openai", "model": "gpt-4", "systemPrompt": ""},
        )
        assert response.status_code == 401

    def test_create_agent_rejects_unknown_provider(self, client):
        response = client.post(
            "/api/agents",
            json={"name": "x", "provider": "cohere", "model": "m", "systemPrompt": ""},
            headers=auth_headers(),
        )
        assert response.status_code == 400


# ============================================
# Conversations and Usage
# ============================================


class TestConversationsAndUsage:
    def test_missing_conversation_is_404(self, client):
        response = client.get("/api/conversations/conv-missing", headers=auth_headers())
        assert response.status_code == 404

    def test_list_conversations(self, client):
        ids = []
        for text in ("one", "two"):
            ids.append(
                client.post(
                    "/api/chat",
                    json={"agentId": "code-assistant", "message": text},
                    headers=auth_headers(),
                ).json()["conversationId"]
            )

        body = client.get("/api/conversations", headers=auth_headers()).json()
        assert body == {"conversationIds": ids, "total": 2}

    def test_usage_accumulates(self, client):
        headers = auth_headers("bob")
        assert client.get("/api/users/me/usage", headers=headers).json() == {
            "userId": "bob",
            "requestCount": 0,
            "tokenCount": 0,
        }

        for _ in range(3):
            client.post(
                "/api/chat",
                json={"agentId": "general-assistant", "message": "Hi"},
                headers=headers,
            )

        usage = client.get("/api/users/me/usage", headers=headers).json()
        assert usage["requestCount"] == 3
        assert usage["tokenCount"] == 36


# ============================================
# Rate Limiting
# ============================================


class TestRateLimiting:
    def test_over_quota_is_429(self, dispatcher, maintenance_config):
        app = create_app(
            dispatcher=dispatcher,
            maintenance_config=maintenance_config,
            rate_limit_config=RateLimitConfig(requests_per_window=2, window_seconds=900),
        )

        with TestClient(app) as client:
            assert client.get("/api/agents").status_code == 200
            assert client.get("/api/agents").status_code == 200
            response = client.get("/api/agents")

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1

    def test_quota_headers(self, client):
        first = client.get("/api/agents")
        second = client.get("/api/agents")

        assert first.headers["X-RateLimit-Limit"] == "1000"
        assert int(first.headers["X-RateLimit-Remaining"]) - 1 == int(
            second.headers["X-RateLimit-Remaining"]
        )


# ============================================
# WebSocket
# ============================================


def get_ticket(client: TestClient, sub: str = "user123") -> str:
    response = client.post("/api/realtime/ticket", headers=auth_headers(sub))
    assert response.status_code == 200
    return response.json()["ticket"]


def sync(ws) -> None:
    """Round-trip a ping so earlier frames are known to be processed."""
    ws.send_json({"event": "ping"})
    assert ws.receive_json() == {"event": "pong", "data": {}}


class TestWebSocket:
    """Tests for the real-time channel."""

    def test_ticket_requires_auth(self, client):
        assert client.post("/api/realtime/ticket").status_code == 401

    def test_ticket_response(self, client):
        body = client.post("/api/realtime/ticket", headers=auth_headers()).json()
        assert body["expiresIn"] > 0
        assert len(body["ticket"]) > 20

    def test_invalid_ticket_rejected(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?ticket=bogus") as ws:
                ws.receive_json()

    def test_missing_ticket_rejected(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()

    def test_ticket_single_use(self, client):
        ticket = get_ticket(client)

        with client.websocket_connect(f"/ws?ticket={ticket}") as ws:
            sync(ws)

        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/ws?ticket={ticket}") as ws:
                ws.receive_json()

    def test_room_fan_out(self, client):
        alice_ticket = get_ticket(client, "alice")
        bob_ticket = get_ticket(client, "bob")

        with client.websocket_connect(f"/ws?ticket={alice_ticket}") as alice, \
             client.websocket_connect(f"/ws?ticket={bob_ticket}") as bob:
            alice.send_json({"event": "join-conversation", "data": "conv-room"})
            bob.send_json({"event": "join-conversation", "data": {"conversationId": "conv-room"}})
            sync(alice)
            sync(bob)

            alice.send_json({
                "event": "send-message",
                "data": {
                    "agentId": "creative-writer",
                    "message": "Once",
                    "conversationId": "conv-room",
                },
            })

            user_event = bob.receive_json()
            assert user_event["event"] == "user-message"
            assert user_event["data"]["message"] == "Once"

            bob_reply = bob.receive_json()
            alice_reply = alice.receive_json()
            for frame in (bob_reply, alice_reply):
                assert frame["event"] == "ai-response"
                assert frame["data"]["response"] == "[creative-writer] Once"
                assert frame["data"]["conversationId"] == "conv-room"

        transcript = client.get("/api/conversations/conv-room", headers=auth_headers()).json()
        assert len(transcript["messages"]) == 2

        usage = client.get("/api/users/me/usage", headers=auth_headers("alice")).json()
        assert usage["tokenCount"] == 12

    def test_error_goes_to_sender(self, client):
        ticket = get_ticket(client)

        with client.websocket_connect(f"/ws?ticket={ticket}") as ws:
            ws.send_json({
                "event": "send-message",
                "data": {"agentId": "nonexistent-agent", "message": "Hi"},
            })
            frame = ws.receive_json()

        assert frame["event"] == "error"
        assert frame["data"]["code"] == "agent_not_found"

    def test_malformed_frames(self, client):
        ticket = get_ticket(client)

        with client.websocket_connect(f"/ws?ticket={ticket}") as ws:
            ws.send_text("{not json")
            assert ws.receive_json()["data"]["code"] == "validation_error"

            ws.send_json({"event": "dance"})
            assert ws.receive_json()["data"]["code"] == "validation_error"

            ws.send_json({"event": "join-conversation", "data": ""})
            assert ws.receive_json()["data"]["code"] == "validation_error"

            # The connection is still usable
            sync(ws)

    def test_dev_mode_without_ticket(self, client):
        with patch.object(JWTConfig, "REQUIRE_AUTH", False):
            with client.websocket_connect("/ws") as ws:
                sync(ws)

    def test_send_message_rate_limited(self, dispatcher, maintenance_config):
        app = create_app(
            dispatcher=dispatcher,
            maintenance_config=maintenance_config,
            rate_limit_config=RateLimitConfig(requests_per_window=1, window_seconds=900),
        )
        payload = {"agentId": "general-assistant", "message": "Hi", "conversationId": "conv-rl"}

        with patch.object(JWTConfig, "REQUIRE_AUTH", False), TestClient(app) as client:
            with client.websocket_connect("/ws") as ws:
                ws.send_json({"event": "send-message", "data": payload})
                ws.send_json({"event": "send-message", "data": payload})
                frames = [ws.receive_json(), ws.receive_json()]

        by_event = {frame["event"]: frame["data"] for frame in frames}
        assert set(by_event) == {"ai-response", "error"}
        assert by_event["error"]["code"] == "rate_limited"
        assert isinstance(by_event["error"]["retryAfter"], int)
        assert by_event["error"]["retryAfter"] >= 1
        assert dispatcher.calls == 1

    def test_live_events_carry_transcript_timestamps(self, client):
        alice_ticket = get_ticket(client, "alice")
        bob_ticket = get_ticket(client, "bob")

        with client.websocket_connect(f"/ws?ticket={alice_ticket}") as alice, \
             client.websocket_connect(f"/ws?ticket={bob_ticket}") as bob:
            bob.send_json({"event": "join-conversation", "data": "conv-ts"})
            sync(bob)

            alice.send_json({
                "event": "send-message",
                "data": {"agentId": "general-assistant", "message": "Hi", "conversationId": "conv-ts"},
            })
            user_event = bob.receive_json()["data"]
            reply = alice.receive_json()["data"]

        messages = client.get("/api/conversations/conv-ts", headers=auth_headers()).json()["messages"]
        assert datetime.fromisoformat(user_event["timestamp"]) == datetime.fromisoformat(
            messages[0]["timestamp"]
        )
        assert datetime.fromisoformat(reply["timestamp"]) == datetime.fromisoformat(
            messages[1]["timestamp"]
        )
