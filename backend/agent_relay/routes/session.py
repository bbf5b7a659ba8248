"""Session lifecycle — POST/DELETE /api/chat/session."""

from fastapi import APIRouter, Depends, Query

from agent_relay.dependencies import get_registry
from agent_relay.models import CloseSessionResponse, StartSessionResponse
from agent_relay.session_registry import SessionRegistry

router = APIRouter()


@router.post(
    "/api/chat/session",
    response_model=StartSessionResponse,
    response_model_exclude_none=True,
)
async def start_session(
    registry: SessionRegistry = Depends(get_registry),
) -> StartSessionResponse:
    info = await registry.create_session()
    return StartSessionResponse(
        session_id=info.session_id,
        initial_message=info.initial_message,
    )


@router.delete("/api/chat/session", response_model=CloseSessionResponse)
async def close_session(
    session_id: str = Query(alias="sessionId", min_length=1),
    registry: SessionRegistry = Depends(get_registry),
) -> CloseSessionResponse:
    await registry.close_session(session_id)
    return CloseSessionResponse(success=True)
