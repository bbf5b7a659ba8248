"""Chat endpoint — GET /api/chat/message → SSE stream."""

from fastapi import APIRouter, Depends, Query
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from agent_relay.config import settings
from agent_relay.dependencies import get_registry
from agent_relay.session_registry import SessionRegistry
from agent_relay.sse_bridge import stream_sse_events
from agent_relay.stream_decoder import decode_stream

router = APIRouter()


@router.get("/api/chat/message")
async def send_message(
    session_id: str = Query(alias="sessionId", min_length=1),
    message: str = Query(min_length=1),
    registry: SessionRegistry = Depends(get_registry),
) -> EventSourceResponse:
    """Send a message, receive streaming SSE response.

    Events emitted (as `data:` frames): Text, Progress, Error, EndOfResponse.
    Failures before the upstream stream opens are returned as JSON errors.
    """
    upstream = await registry.send_message(session_id, message)
    return EventSourceResponse(
        stream_sse_events(decode_stream(upstream, settings.stream_frame_style)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache, no-transform"},
        background=BackgroundTask(upstream.aclose),
    )
