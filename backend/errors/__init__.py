"""
Zenbot Error Handling Module

Provides standardized error codes, exceptions, and response builders
for consistent error handling across the application.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        ZenbotError,
        ValidationError,
        NotFoundError,
        StoreNotReady,
        EmbeddingUnavailable,
        EmbeddingFailure,
        GenerationFailure,
        ClassificationAmbiguous,

        # Response builders
        error_response,
        success_response,

        # HTTP mapping and logging
        register_error_handlers,
        status_for_error,
        log_error,
    )

Example:
    from errors import NotFoundError

    def get_document(doc_id):
        record = store.get(doc_id)
        if record is None:
            raise NotFoundError(
                "Document not found",
                resource_type="document",
                resource_id=doc_id,
            )
        return record
"""

from .codes import ErrorCode
from .exceptions import (
    ZenbotError,
    ValidationError,
    NotFoundError,
    StoreNotReady,
    EmbeddingUnavailable,
    EmbeddingFailure,
    GenerationFailure,
    ClassificationAmbiguous,
)
from .response import (
    error_response,
    success_response,
)
from .handlers import (
    register_error_handlers,
    status_for_error,
    log_error,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "ZenbotError",
    "ValidationError",
    "NotFoundError",
    "StoreNotReady",
    "EmbeddingUnavailable",
    "EmbeddingFailure",
    "GenerationFailure",
    "ClassificationAmbiguous",
    # Response builders
    "error_response",
    "success_response",
    # HTTP mapping and logging
    "register_error_handlers",
    "status_for_error",
    "log_error",
]
