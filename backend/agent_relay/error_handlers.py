"""Global exception handlers — every failure becomes `{"error": message}`.

    AgentRelayError        -> its http_status, its message
    RequestValidationError -> 400, names the offending fields
    Exception              -> 500, no internal details
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from agent_relay.errors import AgentRelayError
from agent_relay.models import ErrorResponse

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    @app.exception_handler(AgentRelayError)
    async def relay_error_handler(request: Request, exc: AgentRelayError):
        logger.error(
            "%s on %s: %s", type(exc).__name__, request.url.path, exc.message,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=ErrorResponse(error=exc.message).model_dump(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error=_describe_validation_error(exc)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s: %s", request.url.path, exc, exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="Internal server error").model_dump(),
        )


def _describe_validation_error(exc: RequestValidationError) -> str:
    fields = [str(e["loc"][-1]) for e in exc.errors() if e.get("loc")]
    if not fields:
        return "Invalid request"
    return "Invalid or missing parameters: " + ", ".join(dict.fromkeys(fields))
