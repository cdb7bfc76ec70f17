"""
Error handling utilities for Zenbot.

Maps the exception hierarchy onto HTTP status codes and provides
consistent error logging.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .exceptions import (
    ZenbotError,
    ValidationError,
    NotFoundError,
    StoreNotReady,
)
from .response import error_response

logger = logging.getLogger(__name__)


def status_for_error(error: Exception) -> int:
    """HTTP status code for an exception."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, StoreNotReady):
        return 503
    return 500


async def zenbot_error_handler(request: Request, exc: ZenbotError) -> JSONResponse:
    """FastAPI exception handler for ZenbotError and subclasses."""
    status = status_for_error(exc)
    if status >= 500:
        log_error(logger, exc, context=f"{request.method} {request.url.path}", include_traceback=False)
    return JSONResponse(status_code=status, content=error_response(exc))


def register_error_handlers(app: FastAPI) -> None:
    """Install the Zenbot exception handler on an app."""
    app.add_exception_handler(ZenbotError, zenbot_error_handler)


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Args:
        logger: Logger instance to use
        error: The exception to log
        context: Optional context string to prefix the message
        include_traceback: Whether to include the full stack trace

    Example:
        >>> log_error(logger, err, context="Generation")
        # Logs: "[Generation] GENERATION_FAILED: Generation service call failed"
    """
    if isinstance(error, ZenbotError):
        message = f"{error.code.value}: {error.message}"
    else:
        message = str(error)

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=include_traceback)
