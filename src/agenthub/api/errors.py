"""
Exception handlers for the HTTP gateway.

Maps the domain exception hierarchy onto status codes. Client-facing
messages are fixed strings; internal detail goes to the log only.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..domain.exceptions import (
    AgentNotFoundError,
    ChatServiceError,
    DuplicateAgentError,
    ProviderError,
    ValidationError,
)

logger = logging.getLogger(__name__)


PROVIDER_FAILURE_MESSAGE = "Failed to get response from AI"
INTERNAL_ERROR_MESSAGE = "Internal server error"


def _error_body(message: str, code: str, details: dict | None = None) -> dict:
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return body


def status_for(error: ChatServiceError) -> int:
    """HTTP status for a domain error."""
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, AgentNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, DuplicateAgentError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, ProviderError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_exception_handlers(app: FastAPI) -> None:
    """Install the chat service exception handlers on an app."""

    @app.exception_handler(ChatServiceError)
    async def chat_service_error_handler(request: Request, exc: ChatServiceError):
        status_code = status_for(exc)

        if isinstance(exc, ProviderError):
            logger.error(f"Provider failure on {request.url.path}: {exc.to_dict()}")
            return JSONResponse(
                status_code=status_code,
                content=_error_body(PROVIDER_FAILURE_MESSAGE, exc.code),
            )

        if status_code >= 500:
            logger.error(f"Unhandled service error on {request.url.path}: {exc!r}")
            return JSONResponse(
                status_code=status_code,
                content=_error_body(INTERNAL_ERROR_MESSAGE, "INTERNAL_ERROR"),
            )

        return JSONResponse(
            status_code=status_code,
            content=_error_body(exc.message, exc.code, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body("Invalid request", "VALIDATION_ERROR", {"fields": fields}),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        # Log original error internally, never send it to the client
        logger.error(f"Internal error on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(INTERNAL_ERROR_MESSAGE, "INTERNAL_ERROR"),
        )
