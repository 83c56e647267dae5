"""FastAPI application for the multi-agent chat service.

This is the main entry point for the API server:

    $ uvicorn agenthub.app:app --port 3000
    $ python -m agenthub.app
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Local imports
from .api import (
    create_chat_dependencies,
    realtime_router,
    register_exception_handlers,
    router,
)
from .domain.ports import IProviderDispatcher
from .maintenance import MaintenanceConfig, MaintenanceScheduler
from .memory import InMemoryConversationStore, InMemoryFileStore, InMemoryUserStore
from .orchestrator import ChatOrchestrator, OrchestratorConfig
from .providers import (
    AnthropicProvider,
    LLMProviderConfig,
    OpenAIProvider,
    ProviderDispatcher,
)
from .registry import AgentRegistry
from .security import WebSocketTicketAuth, init_rate_limiter
from .security.rate_limiter import RateLimitConfig

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# Longest wait for in-flight realtime turns on shutdown
SHUTDOWN_DRAIN_SECONDS = float(os.getenv("SHUTDOWN_DRAIN_SECONDS", "30"))


def _provider_config(api_key: str, base_url_var: str) -> LLMProviderConfig:
    return LLMProviderConfig(
        api_key=api_key,
        base_url=os.getenv(base_url_var) or None,
        timeout=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "60")),
        max_tokens=int(os.getenv("PROVIDER_MAX_TOKENS", "1000")),
        temperature=float(os.getenv("PROVIDER_TEMPERATURE", "0.7")),
    )


def build_dispatcher() -> ProviderDispatcher:
    """Create a dispatcher with every provider that has an API key."""
    dispatcher = ProviderDispatcher()

    openai_key = os.getenv("OPENAI_API_KEY")
    anthropic_key = os.getenv("ANTHROPIC_API_KEY")

    if openai_key:
        try:
            dispatcher.register(OpenAIProvider(_provider_config(openai_key, "OPENAI_BASE_URL")))
        except Exception as e:
            logger.warning(f"Failed to initialize OpenAI provider: {e}")

    if anthropic_key:
        try:
            dispatcher.register(
                AnthropicProvider(_provider_config(anthropic_key, "ANTHROPIC_BASE_URL"))
            )
        except Exception as e:
            logger.warning(f"Failed to initialize Anthropic provider: {e}")

    if not dispatcher.available:
        logger.warning(
            "No LLM API keys configured (OPENAI_API_KEY or ANTHROPIC_API_KEY) - "
            "chat turns will fail until one is set"
        )

    return dispatcher


def create_app(
    dispatcher: Optional[IProviderDispatcher] = None,
    orchestrator_config: Optional[OrchestratorConfig] = None,
    maintenance_config: Optional[MaintenanceConfig] = None,
    rate_limit_config: Optional[RateLimitConfig] = None,
    registry: Optional[AgentRegistry] = None,
) -> FastAPI:
    """Wire the stores, orchestrator and gateways into a FastAPI app.

    Args:
        dispatcher: Provider dispatcher; built from environment keys if omitted
        orchestrator_config: Retry policy and input limits
        maintenance_config: Retention windows and sweep interval
        rate_limit_config: Per-client request quota
        registry: Agent registry; seeded with the built-in agents if omitted
    """
    registry = registry or AgentRegistry()
    conversations = InMemoryConversationStore()
    users = InMemoryUserStore()
    files = InMemoryFileStore()
    dispatcher = dispatcher or build_dispatcher()

    orchestrator = ChatOrchestrator(
        agents=registry,
        dispatcher=dispatcher,
        conversations=conversations,
        users=users,
        config=orchestrator_config,
    )
    deps = create_chat_dependencies(orchestrator, users, ticket_auth=WebSocketTicketAuth())
    scheduler = MaintenanceScheduler(conversations, files, config=maintenance_config)
    init_rate_limiter(rate_limit_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        - Startup: initialize stores, start the maintenance scheduler
        - Shutdown: finish in-flight realtime turns, stop the scheduler,
          close stores and provider clients
        """
        logger.info("Starting chat service...")

        for store in (registry, conversations, users, files):
            await store.init()

        scheduler.start()
        logger.info(f"Chat service ready with {len(registry)} agents")

        yield

        # Shutdown (reverse order of initialization)
        logger.info("Shutting down chat service...")

        try:
            await asyncio.wait_for(deps.gateway.drain(), timeout=SHUTDOWN_DRAIN_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Realtime turns still running at shutdown; dropping their events")
        await deps.gateway.close()
        await scheduler.stop()

        for store in (files, users, conversations, registry):
            await store.close()

        close = getattr(dispatcher, "close", None)
        if close is not None:
            await close()
        logger.info("Chat service stopped")

    app = FastAPI(
        title="Multi-Agent Chat Service",
        description="Chat with configured AI agents over HTTP or WebSocket.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.scheduler = scheduler
    app.state.registry = registry

    # Configure CORS
    cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    register_exception_handlers(app)
    app.include_router(router)
    app.include_router(realtime_router)

    @app.get("/health")
    async def health():
        """Liveness plus retention sweep status."""
        return {
            "status": "OK",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": VERSION,
            "agents": len(registry),
            "maintenance": scheduler.state.to_dict(),
        }

    return app


app = create_app()


# Entry point for running with uvicorn
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "agenthub.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "3000")),
    )
