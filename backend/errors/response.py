"""
Standard error response builders for Zenbot.

Provides consistent response formats for the HTTP API.
"""

from typing import Any, Optional
from .codes import ErrorCode
from .exceptions import ZenbotError


def error_response(error: ZenbotError | Exception, operation: Optional[str] = None, include_context: bool = True) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        operation: Optional operation name for context
        include_context: Whether to include the context dict (disable for privacy)

    Returns:
        Standard error response dict with success=False

    Example:
        >>> from errors import NotFoundError, error_response
        >>> err = NotFoundError("Document not found", resource_type="document", resource_id="abc")
        >>> error_response(err, operation="get_document")
        {
            "success": False,
            "error": {
                "code": "NOT_FOUND_DOCUMENT",
                "message": "Document not found",
                "details": None,
                "operation": "get_document",
                "recoverable": True,
                "context": {"resource_type": "document", "resource_id": "abc"}
            }
        }
    """
    if isinstance(error, ZenbotError):
        return {
            "success": False,
            "error": {
                "code": error.code.value,
                "message": error.message,
                "details": error.details,
                "operation": operation,
                "recoverable": error.recoverable,
                "context": error.context if include_context else None,
            },
        }

    # Fallback for foreign exceptions
    return {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_UNEXPECTED.value,
            "message": str(error),
            "details": None,
            "operation": operation,
            "recoverable": False,
            "context": None,
        },
    }


def success_response(data: Optional[dict] = None, **kwargs: Any) -> dict:
    """Build a standard success response dictionary.

    Args:
        data: Optional data dict to include in response
        **kwargs: Additional key-value pairs to include at top level

    Returns:
        Standard success response dict with success=True

    Example:
        >>> success_response(id="abc")
        {"success": True, "id": "abc"}
    """
    response = {"success": True}

    if data:
        response.update(data)
    if kwargs:
        response.update(kwargs)

    return response
