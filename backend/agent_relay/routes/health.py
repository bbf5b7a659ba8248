"""Health check endpoint."""

from fastapi import APIRouter, Depends

from agent_relay.config import settings
from agent_relay.dependencies import get_registry
from agent_relay.models import HealthResponse
from agent_relay.session_registry import SessionRegistry

router = APIRouter()


@router.get("/api/health", response_model=HealthResponse)
async def health(registry: SessionRegistry = Depends(get_registry)) -> HealthResponse:
    status = "ok" if settings.agent_configured else "degraded"
    return HealthResponse(
        status=status,
        agent_configured=settings.agent_configured,
        active_sessions=len(registry),
    )
