"""Session registry — maps session ids to their upstream client and sequence.

The registry is the only owner of `ChatSession` entries. It is created once
per process (see `agent_relay.main.lifespan`) and handed to the routes
through a dependency, never reached as a module global.

Entries live for the process lifetime only. After a restart the registry is
empty: closing an unknown session still reaches upstream through a transient
client, while messaging one is a NotFoundError unless
`adopt_unknown_sessions` is enabled.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from agent_relay.agent_client import AgentClient, MessageStream
from agent_relay.errors import AgentRelayError, NotFoundError
from agent_relay.models import SessionInfo

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], AgentClient]


def seed_sequence_id() -> int:
    """Wall-clock milliseconds, so ids stay ahead of those used before a restart."""
    return time.time_ns() // 1_000_000


@dataclass
class ChatSession:
    session_id: str
    client: AgentClient
    sequence_id: int = field(default_factory=seed_sequence_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionRegistry:
    """Process-wide session table with lazy recovery for unknown ids."""

    def __init__(self, client_factory: ClientFactory, *, adopt_unknown_sessions: bool = False):
        self._client_factory = client_factory
        self._sessions: dict[str, ChatSession] = {}
        self.adopt_unknown_sessions = adopt_unknown_sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    async def create_session(self) -> SessionInfo:
        """Open an upstream session with a new client and register it."""
        client = self._client_factory()
        info = await client.start_session()
        self._sessions[info.session_id] = ChatSession(info.session_id, client)
        logger.info("Registered session %s (%d active)", info.session_id, len(self._sessions))
        return info

    def lookup(self, session_id: str) -> ChatSession | None:
        """Return the session, or None if it is not registered."""
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    def remove(self, session_id: str) -> ChatSession | None:
        """Drop the entry. No-op for unknown ids."""
        return self._sessions.pop(session_id, None)

    async def send_message(self, session_id: str, text: str) -> MessageStream:
        """Advance the session's sequence id and open the response stream.

        Raises:
            NotFoundError: the id is unknown and adoption is disabled.
        """
        if not self.adopt_unknown_sessions:
            session = self.require(session_id)
        else:
            session = self._sessions.get(session_id)
        if session is None:
            logger.warning("Adopting unregistered session %s with a fresh client", session_id)
            session = ChatSession(session_id, self._client_factory())
            self._sessions[session_id] = session

        session.sequence_id += 1
        return await session.client.send_message(session_id, text, session.sequence_id)

    async def close_session(self, session_id: str) -> None:
        """Remove the session and close it upstream.

        Unknown ids are closed through a throwaway client. The entry is gone
        even if the upstream DELETE fails; that failure is re-raised.
        """
        session = self.remove(session_id)
        if session is None:
            logger.info("Session %s not registered, closing with a transient client", session_id)
            client = self._client_factory()
        else:
            client = session.client
        await client.close_session(session_id)

    async def close_all(self) -> None:
        """Close every registered session upstream. Called on shutdown."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            try:
                await session.client.close_session(session.session_id)
            except AgentRelayError as e:
                logger.warning("Error closing session %s on shutdown: %s", session.session_id, e)
