"""Upstream agent API client — open, message and close conversational sessions.

One `AgentClient` is bound to one credential (`TokenProvider`). All clients
share the application's `httpx.AsyncClient`. Message responses are handed
back unread as a `MessageStream`; the caller consumes and closes it.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator

import httpx

from agent_relay.config import Settings
from agent_relay.errors import (
    ConfigurationError,
    ProtocolError,
    UpstreamError,
    UpstreamStreamError,
)
from agent_relay.models import SessionInfo
from agent_relay.token_provider import TokenProvider

logger = logging.getLogger(__name__)

API_PREFIX = "/einstein/ai-agent/v1"


class MessageStream:
    """Raw event-stream body of one message response.

    Iterating yields byte chunks as they arrive. Transport failures while
    reading surface as UpstreamStreamError. `aclose()` releases the
    connection and is safe to call more than once.
    """

    def __init__(self, response: httpx.Response, session_id: str, sequence_id: int):
        self._response = response
        self.session_id = session_id
        self.sequence_id = sequence_id

    @property
    def closed(self) -> bool:
        return self._response.is_closed

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise UpstreamStreamError(
                f"Upstream stream for session {self.session_id} failed: {e}"
            ) from e

    async def aclose(self) -> None:
        if not self._response.is_closed:
            await self._response.aclose()
            logger.debug(
                "Released stream for session %s (sequence %d)",
                self.session_id,
                self.sequence_id,
            )


class AgentClient:
    """Session-level operations against the upstream agent API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        settings: Settings,
        token_provider: TokenProvider | None = None,
    ):
        if not settings.agent_configured:
            raise ConfigurationError(
                "Missing required environment variables: "
                + ", ".join(settings.missing_agent_settings)
            )
        self._http = http
        self._settings = settings
        self.tokens = token_provider or TokenProvider(http, settings)

    def _api_url(self, path: str) -> str:
        return f"{self._settings.afp_api_url.rstrip('/')}{API_PREFIX}{path}"

    async def _auth_headers(self) -> dict[str, str]:
        token = await self.tokens.get_token()
        return {"Authorization": f"Bearer {token}"}

    def _raise_for_status(self, resp: httpx.Response, action: str) -> None:
        if resp.is_success:
            return
        if resp.status_code == 401:
            self.tokens.invalidate()
        logger.error("Failed to %s: %s %.500s", action, resp.status_code, resp.text)
        raise UpstreamError(
            f"Failed to {action} with status: {resp.status_code}",
            status_code=resp.status_code,
        )

    async def start_session(self) -> SessionInfo:
        """Open a new upstream session.

        Returns:
            SessionInfo with the upstream session id and the agent's greeting,
            if it sent one.

        Raises:
            AuthenticationError: no token could be acquired.
            UpstreamError: the call failed or returned a non-success status.
            ProtocolError: the response carries no session id.
        """
        headers = await self._auth_headers()
        url = self._api_url(f"/agents/{self._settings.bot_id}/sessions")
        payload = {
            "externalSessionKey": str(uuid.uuid4()),
            "instanceConfig": {"endpoint": self._settings.core_url},
            "streamingCapabilities": {"chunkTypes": ["Text"]},
            "bypassUser": True,
        }

        logger.info("Opening session at %s", url)
        try:
            resp = await self._http.post(
                url, json=payload, headers=headers, timeout=self._settings.http_timeout
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to start session: {e}") from e
        self._raise_for_status(resp, "start session")

        try:
            data = resp.json()
        except ValueError as e:
            raise ProtocolError("Session response is not valid JSON") from e
        if not isinstance(data, dict) or not data.get("sessionId"):
            raise ProtocolError("Failed to get a valid session ID from the response")

        initial_message = None
        messages = data.get("messages") or []
        if messages and isinstance(messages[0], dict):
            first = messages[0].get("message")
            if isinstance(first, str):
                initial_message = first

        logger.info("Session started with ID: %s", data["sessionId"])
        return SessionInfo(session_id=data["sessionId"], initial_message=initial_message)

    async def send_message(self, session_id: str, text: str, sequence_id: int) -> MessageStream:
        """POST a text message and return the unread event-stream response.

        The read timeout of the request is the stream idle timeout, so a
        stalled upstream surfaces as UpstreamStreamError while iterating.
        """
        headers = {**await self._auth_headers(), "Accept": "text/event-stream"}
        url = self._api_url(f"/sessions/{session_id}/messages/stream")
        payload = {
            "message": {"sequenceId": sequence_id, "type": "Text", "text": text},
            "variables": [],
        }
        request = self._http.build_request(
            "POST",
            url,
            json=payload,
            headers=headers,
            timeout=httpx.Timeout(
                self._settings.http_timeout, read=self._settings.stream_idle_timeout
            ),
        )

        logger.info("Sending message to session %s (sequence %d)", session_id, sequence_id)
        try:
            resp = await self._http.send(request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to send message: {e}") from e

        if not resp.is_success:
            try:
                await resp.aread()
            finally:
                await resp.aclose()
            self._raise_for_status(resp, "send message")

        return MessageStream(resp, session_id, sequence_id)

    async def close_session(self, session_id: str) -> None:
        """DELETE the upstream session."""
        headers = await self._auth_headers()
        url = self._api_url(f"/sessions/{session_id}")

        logger.info("Closing session at: %s", url)
        try:
            resp = await self._http.delete(
                url, headers=headers, timeout=self._settings.http_timeout
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to close session: {e}") from e
        self._raise_for_status(resp, "close session")
        logger.info("Session %s closed successfully", session_id)
