"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agent_relay.agent_client import AgentClient
from agent_relay.config import settings
from agent_relay.error_handlers import register_error_handlers
from agent_relay.routes import chat, health, session
from agent_relay.session_registry import SessionRegistry

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: shared HTTP client + session registry. Shutdown: close sessions + client."""
    if not settings.agent_configured:
        logger.warning(
            "Agent API not configured, missing: %s",
            ", ".join(settings.missing_agent_settings),
        )

    http = httpx.AsyncClient(timeout=settings.http_timeout)
    app.state.registry = SessionRegistry(
        lambda: AgentClient(http, settings),
        adopt_unknown_sessions=settings.adopt_unknown_sessions,
    )
    yield
    await app.state.registry.close_all()
    await http.aclose()


app = FastAPI(
    title="Agent Relay",
    description="Chat relay to an upstream conversational agent API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(health.router)
app.include_router(session.router)
app.include_router(chat.router)
