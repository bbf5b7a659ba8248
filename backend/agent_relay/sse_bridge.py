"""SSE bridge — translates SemanticEvents to ServerSentEvent objects.

This module sits between the stream decoder and the HTTP response. Each
event becomes one `data: <json>` frame. The bridge guarantees the UI exactly
one EndOfResponse per message: repeats from the source are dropped, one is
appended if the source never sent it, and a source that fails mid-stream is
turned into an Error event followed by EndOfResponse instead of an aborted
response.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing

from sse_starlette.sse import ServerSentEvent

from agent_relay.errors import AgentRelayError
from agent_relay.models import SemanticEvent

logger = logging.getLogger(__name__)

GENERIC_STREAM_ERROR = "Error processing message"


def to_server_sent_event(event: SemanticEvent) -> ServerSentEvent:
    return ServerSentEvent(data=event.to_json(), sep="\n")


async def stream_sse_events(
    event_source: AsyncGenerator[SemanticEvent, None],
) -> AsyncGenerator[ServerSentEvent, None]:
    """Convert SemanticEvents to SSE events.

    Args:
        event_source: Async generator from stream_decoder.decode_stream().
            It is closed when this generator finishes or is cancelled.

    Yields:
        ServerSentEvent objects ready for EventSourceResponse.
    """
    end_sent = False
    error: str | None = None

    try:
        async with aclosing(event_source) as events:
            async for event in events:
                if event.is_terminal:
                    if end_sent:
                        continue
                    end_sent = True
                yield to_server_sent_event(event)

    except AgentRelayError as e:
        logger.error("Upstream stream error: %s", e)
        error = e.message

    except Exception:
        logger.exception("Unexpected error while relaying stream")
        error = GENERIC_STREAM_ERROR

    if error is None:
        if not end_sent:
            yield to_server_sent_event(SemanticEvent.end_of_response())
        return
    if end_sent:
        # The UI already has its terminal event.
        logger.warning("Dropping stream error after EndOfResponse: %s", error)
        return

    yield to_server_sent_event(SemanticEvent.failure(error))
    yield to_server_sent_event(SemanticEvent.end_of_response())
