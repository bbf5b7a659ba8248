"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from urllib.parse import parse_qs

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from agent_relay.agent_client import AgentClient
from agent_relay.config import Settings
from agent_relay.dependencies import get_registry
from agent_relay.main import app
from agent_relay.session_registry import SessionRegistry

API = "https://api.agent.test"
CORE = "https://core.agent.test"
BOT_ID = "bot-123"


def frame(message: dict) -> bytes:
    """One `data:` line carrying an upstream message object."""
    return f"data: {json.dumps({'message': message}, ensure_ascii=False)}\n".encode()


def text_chunk(text: str) -> bytes:
    return frame({"type": "TextChunk", "message": text})


END_OF_TURN = frame({"type": "EndOfTurn"})


def parse_sse_events(raw: str) -> list[dict]:
    """Parse raw SSE text into the list of JSON objects in its data frames."""
    events = []
    for line in raw.split("\n"):
        line = line.rstrip("\r")
        if line.startswith("data:"):
            events.append(json.loads(line[len("data:"):].strip()))
    return events


# ---------------------------------------------------------------------------
# Fake upstream agent API
# ---------------------------------------------------------------------------


class FakeAgentAPI:
    """httpx.MockTransport handler mimicking the upstream agent API.

    Tests tweak the public attributes to change what the upstream answers,
    and inspect `requests` / `message_payloads` afterwards.
    """

    def __init__(self):
        self.token_status = 200
        self.token_body: dict = {"access_token": "tok-1", "token_type": "Bearer"}
        self.session_status = 200
        self.session_body: dict = {
            "sessionId": "abc",
            "messages": [{"type": "Inform", "message": "Hi!"}],
        }
        self.stream_status = 200
        self.stream_chunks: list[bytes] = [text_chunk("Hello"), END_OF_TURN]
        self.stream_error: Exception | None = None
        self.delete_status = 204

        self.requests: list[httpx.Request] = []
        self.token_requests = 0
        self.message_payloads: list[dict] = []
        self.closed_sessions: list[str] = []

    async def _stream_body(self):
        for chunk in self.stream_chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/services/oauth2/token":
            self.token_requests += 1
            self.last_token_form = parse_qs(request.content.decode())
            return httpx.Response(self.token_status, json=self.token_body)

        if request.method == "POST" and path.endswith(f"/agents/{BOT_ID}/sessions"):
            self.last_session_payload = json.loads(request.content)
            return httpx.Response(self.session_status, json=self.session_body)

        if request.method == "POST" and path.endswith("/messages/stream"):
            self.message_payloads.append(json.loads(request.content))
            if self.stream_status != 200:
                return httpx.Response(self.stream_status, text="upstream says no")
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=self._stream_body(),
            )

        if request.method == "DELETE" and "/sessions/" in path:
            self.closed_sessions.append(path.rsplit("/", 1)[-1])
            return httpx.Response(self.delete_status)

        return httpx.Response(404, json={"error": f"unexpected {request.method} {path}"})


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a class-level exit event bound to the first event loop."""
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest.fixture
def agent_settings() -> Settings:
    return Settings(
        _env_file=None,
        bot_id=BOT_ID,
        afp_api_url=API,
        core_url=CORE,
        client_id="client-id",
        client_secret="client-secret",
    )


@pytest.fixture
def upstream() -> FakeAgentAPI:
    return FakeAgentAPI()


@pytest.fixture
async def http_client(upstream) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as http:
        yield http


@pytest.fixture
def registry(http_client, agent_settings) -> SessionRegistry:
    return SessionRegistry(lambda: AgentClient(http_client, agent_settings))


@pytest.fixture
async def client(registry) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints against the fake upstream."""
    app.dependency_overrides[get_registry] = lambda: registry
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
