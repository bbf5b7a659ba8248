"""Error hierarchy for the relay.

Errors raised before a stream is established bubble to the FastAPI handlers
in `agent_relay.error_handlers` and become `{"error": message}` bodies with
the class's `http_status`. Errors raised while a stream is in flight are
folded into the event sequence by `agent_relay.sse_bridge` instead.
"""

from __future__ import annotations


class AgentRelayError(Exception):
    """Base class for every failure the relay knows how to report."""

    http_status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(AgentRelayError):
    """Required upstream settings are missing."""


class AuthenticationError(AgentRelayError):
    """Token exchange failed or returned no token."""


class ProtocolError(AgentRelayError):
    """Upstream response is missing a required field."""

    http_status = 502


class UpstreamError(AgentRelayError):
    """Upstream answered with a non-success status."""

    http_status = 502

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamStreamError(AgentRelayError):
    """Reading the upstream event stream failed mid-flight."""

    http_status = 502


class DecodeError(AgentRelayError):
    """A frame could not be parsed. Always recovered inside the decoder."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class NotFoundError(AgentRelayError):
    """Session id is not in the registry."""

    http_status = 404
