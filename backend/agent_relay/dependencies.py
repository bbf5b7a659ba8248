"""FastAPI dependencies for objects owned by the application lifespan."""

from fastapi import Request

from agent_relay.session_registry import SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    """The SessionRegistry created in `agent_relay.main.lifespan`."""
    return request.app.state.registry
