"""Stream decoder — turns the upstream event stream into SemanticEvents.

The upstream agent API answers a message with a text/event-stream body whose
chunk boundaries carry no meaning: a chunk may end inside a line, inside a
JSON payload or inside a multi-byte character. `StreamDecoder` buffers just
enough to find complete lines and classifies each `data:` payload:

    TextChunk          -> Text (repeated identical chunks are dropped)
    ProgressIndicator  -> Progress
    Inform             -> nothing (it repeats text already streamed)
    EndOfTurn          -> EndOfResponse (duplicate memory is reset)
    anything else      -> Progress or Text, by a verb-prefix heuristic

Malformed payloads never raise out of the decoder; they surface as a Text
event carrying PARSE_ERROR_MARKER. When input ends, whatever is left in the
buffer is flushed as text and exactly one EndOfResponse is appended, even if
an EndOfTurn already produced one.
"""

from __future__ import annotations

import codecs
import json
import logging
import re
from collections.abc import AsyncGenerator, AsyncIterable
from enum import Enum
from typing import Any

from agent_relay.errors import DecodeError
from agent_relay.models import SemanticEvent

logger = logging.getLogger(__name__)

PARSE_ERROR_MARKER = "[Parsing Error]"
DEFAULT_PROGRESS_TEXT = "Working on it..."

_PROGRESS_PATTERN = re.compile(
    r"^(Digging into|Looking up|Searching for|Analyzing|Checking|Working on)",
    re.IGNORECASE,
)

_TEXT_CHUNK = "textchunk"
_PROGRESS_INDICATOR = "progressindicator"
_INFORM = "inform"
_END_OF_TURN = "endofturn"
_KNOWN_TYPES = {_TEXT_CHUNK, _PROGRESS_INDICATOR, _INFORM, _END_OF_TURN}


class FrameStyle(str, Enum):
    """How the upstream frames its events."""
    DATA_ONLY = "data-only"
    EVENT_AND_DATA = "event-and-data"


def _normalize_type(value: Any) -> str:
    """`END_OF_TURN`, `end-of-turn` and `EndOfTurn` all compare equal."""
    if not isinstance(value, str):
        return ""
    return re.sub(r"[\s_\-]", "", value).lower()


def _extract_message(payload: Any) -> dict | None:
    """Pick the upstream message object out of a parsed frame."""
    if not isinstance(payload, dict):
        return None
    inner = payload.get("message")
    if isinstance(inner, dict):
        return inner
    if "type" in payload:
        return payload
    if isinstance(inner, str) and inner:
        return {"message": inner}
    return None


class StreamDecoder:
    """Incremental decoder for one message's response stream.

    Not reusable: after `finish()` a new decoder is needed for the next
    stream.
    """

    def __init__(self, style: FrameStyle = FrameStyle.DATA_ONLY):
        self.style = FrameStyle(style)
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event_label: str | None = None
        self._last_text: str | None = None
        self._finished = False

    def feed(self, chunk: bytes) -> list[SemanticEvent]:
        """Consume one chunk of bytes, return the events it completes."""
        if self._finished:
            raise RuntimeError("StreamDecoder.feed() called after finish()")

        self._buffer += self._utf8.decode(chunk)
        # The last piece may be an unterminated line; keep it for later.
        *lines, self._buffer = self._buffer.split("\n")

        events: list[SemanticEvent] = []
        for line in lines:
            events.extend(self._handle_line(line.rstrip("\r")))
        return events

    def finish(self) -> list[SemanticEvent]:
        """Flush the buffer and terminate the sequence."""
        if self._finished:
            return []
        self._finished = True

        self._buffer += self._utf8.decode(b"", final=True)
        rest, self._buffer = self._buffer.strip(), ""

        events: list[SemanticEvent] = []
        if rest:
            events.extend(self._flush_partial(rest))
        events.append(SemanticEvent.end_of_response())
        return events

    # ------------------------------------------------------------------
    # Line handling
    # ------------------------------------------------------------------

    def _handle_line(self, line: str) -> list[SemanticEvent]:
        if not line.strip():
            self._event_label = None
            return []
        if line.startswith(":"):
            return []

        field, _, value = line.partition(":")
        if field == "event":
            if self.style is FrameStyle.EVENT_AND_DATA:
                self._event_label = value.strip()
            return []
        if field == "data":
            return self._handle_payload(value.strip())
        # id:, retry: and anything unrecognized
        return []

    def _handle_payload(self, raw: str) -> list[SemanticEvent]:
        if not raw:
            return []
        try:
            message = self._parse_frame(raw)
        except DecodeError as exc:
            logger.warning("%s; raw frame: %.200s", exc.message, exc.raw)
            return [SemanticEvent.text_chunk(f"{PARSE_ERROR_MARKER} {raw}")]

        if message is None:
            logger.debug("Ignoring frame without a message object: %.200s", raw)
            return []
        return self._classify(message)

    def _parse_frame(self, raw: str) -> dict | None:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"Invalid JSON in stream frame: {exc}", raw=raw) from exc
        return _extract_message(payload)

    def _flush_partial(self, rest: str) -> list[SemanticEvent]:
        """Best-effort handling of an unterminated last line."""
        if rest.startswith("data:"):
            rest = rest[len("data:"):].strip()
        elif rest.startswith(("event:", "id:", "retry:", ":")):
            return []
        if not rest:
            return []

        try:
            message = self._parse_frame(rest)
        except DecodeError:
            return self._emit_text(rest)
        if message is None:
            return []

        if self._message_type(message) in _KNOWN_TYPES:
            return self._classify(message)
        content = message.get("message")
        return self._emit_text(content) if isinstance(content, str) else []

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _message_type(self, message: dict) -> str:
        kind = _normalize_type(message.get("type"))
        if not kind and self._event_label:
            kind = _normalize_type(self._event_label)
        return kind

    def _classify(self, message: dict) -> list[SemanticEvent]:
        kind = self._message_type(message)
        content = message.get("message")
        if not isinstance(content, str):
            content = ""

        if kind == _TEXT_CHUNK:
            return self._emit_text(content)

        if kind == _PROGRESS_INDICATOR:
            return [SemanticEvent.progress(content or DEFAULT_PROGRESS_TEXT)]

        if kind == _INFORM:
            # Full-message echo of the chunks already sent.
            if content:
                self._last_text = content
            return []

        if kind == _END_OF_TURN:
            self._last_text = None
            return [SemanticEvent.end_of_response()]

        if not content:
            return []
        if message.get("indicatorType") == "ACTION" or _PROGRESS_PATTERN.match(content):
            return [SemanticEvent.progress(content)]
        return self._emit_text(content)

    def _emit_text(self, content: str) -> list[SemanticEvent]:
        if not content or content == self._last_text:
            return []
        self._last_text = content
        return [SemanticEvent.text_chunk(content)]


async def decode_stream(
    chunks: AsyncIterable[bytes],
    style: FrameStyle = FrameStyle.DATA_ONLY,
) -> AsyncGenerator[SemanticEvent, None]:
    """Lazily decode an async byte stream into SemanticEvents.

    The source is pulled one chunk at a time and closed (if it supports
    `aclose()`) when decoding ends, fails or the consumer stops pulling.
    Read errors from the source propagate to the consumer.
    """
    decoder = StreamDecoder(style)
    try:
        async for chunk in chunks:
            for event in decoder.feed(chunk):
                yield event
        for event in decoder.finish():
            yield event
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
