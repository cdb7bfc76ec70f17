"""
Custom exception hierarchy for Zenbot.

All exceptions inherit from ZenbotError and include:
- code: ErrorCode for categorization
- message: Human-readable error message
- details: Optional additional context
- recoverable: Whether the user can retry/fix the issue
- context: Additional key-value pairs for debugging
"""

from typing import Any, Optional
from .codes import ErrorCode


class ZenbotError(Exception):
    """Base exception for all Zenbot errors.

    Attributes:
        code: The ErrorCode categorizing this error
        message: Human-readable error message
        details: Optional additional context for the user
        recoverable: Whether the error can be resolved by user action
        context: Additional debugging information
    """

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        self.message = message
        self.details = details
        self.context = context if context else None

        # Allow overriding class defaults
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class ValidationError(ZenbotError):
    """Malformed request, rejected before any agent work begins."""

    code = ErrorCode.VALIDATION_MISSING_PARAM
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        expected: Optional[str] = None,
        received: Optional[str] = None,
        **context: Any,
    ):
        # Pick the code from what was wrong with the value
        if received is not None and expected is not None:
            code = ErrorCode.VALIDATION_OUT_OF_RANGE
        elif received is not None:
            code = ErrorCode.VALIDATION_INVALID_TYPE
        else:
            code = ErrorCode.VALIDATION_MISSING_PARAM

        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        if expected:
            ctx["expected"] = expected
        if received:
            ctx["received"] = received
        super().__init__(message, details, code=code, **ctx)


class NotFoundError(ZenbotError):
    """Error when a required resource is not found."""

    code = ErrorCode.NOT_FOUND_RESOURCE
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **context: Any,
    ):
        if resource_type == "document":
            code = ErrorCode.NOT_FOUND_DOCUMENT
        elif resource_type == "session":
            code = ErrorCode.NOT_FOUND_SESSION
        else:
            code = ErrorCode.NOT_FOUND_RESOURCE

        ctx = {**context}
        if resource_type:
            ctx["resource_type"] = resource_type
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message, details, code=code, **ctx)


class StoreNotReady(ZenbotError):
    """Vector store (or the embedder behind it) has not finished initializing."""

    code = ErrorCode.STORE_NOT_READY
    recoverable = True


class EmbeddingUnavailable(StoreNotReady):
    """Embedding model is not loaded yet."""

    code = ErrorCode.EMBEDDING_UNAVAILABLE

    def __init__(self, message: str, details: Optional[str] = None, model: Optional[str] = None, **context: Any):
        ctx = {**context}
        if model:
            ctx["model"] = model
        super().__init__(message, details, **ctx)


class EmbeddingFailure(ZenbotError):
    """Embedding model raised while encoding text."""

    code = ErrorCode.EMBEDDING_FAILED
    recoverable = False

    def __init__(self, message: str, details: Optional[str] = None, model: Optional[str] = None, **context: Any):
        ctx = {**context}
        if model:
            ctx["model"] = model
        super().__init__(message, details, **ctx)


class GenerationFailure(ZenbotError):
    """Generation service call raised (connection, HTTP or timeout)."""

    code = ErrorCode.GENERATION_FAILED
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        model: Optional[str] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        if error_type == "timeout":
            code = ErrorCode.GENERATION_TIMEOUT
        elif error_type == "unavailable":
            code = ErrorCode.GENERATION_UNAVAILABLE
        else:
            code = ErrorCode.GENERATION_FAILED

        ctx = {**context}
        if model:
            ctx["model"] = model
        super().__init__(message, details, code=code, **ctx)


class ClassificationAmbiguous(ZenbotError):
    """Intent model output did not name a known label."""

    code = ErrorCode.CLASSIFICATION_AMBIGUOUS
    recoverable = True

    def __init__(self, message: str, details: Optional[str] = None, raw_output: Optional[str] = None, **context: Any):
        ctx = {**context}
        if raw_output is not None:
            ctx["raw_output"] = raw_output[:200]
        super().__init__(message, details, **ctx)
