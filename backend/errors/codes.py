"""
Error codes for Zenbot.

Provides a standardized taxonomy of error codes organized by category.
Use these codes consistently across all error responses.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for Zenbot.

    Categories:
    - VALIDATION_*: Input validation errors
    - NOT_FOUND_*: Resource not found errors
    - STORE_*: Vector store readiness errors
    - EMBEDDING_*: Embedding service errors
    - GENERATION_*: Generation service errors
    - CLASSIFICATION_*: Intent classification errors (never surfaced to users)
    - INTERNAL_*: Internal/unexpected errors
    """

    # Validation errors (input checking)
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_TYPE = "VALIDATION_INVALID_TYPE"
    VALIDATION_OUT_OF_RANGE = "VALIDATION_OUT_OF_RANGE"
    VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"

    # Not found errors (missing resources)
    NOT_FOUND_DOCUMENT = "NOT_FOUND_DOCUMENT"
    NOT_FOUND_SESSION = "NOT_FOUND_SESSION"
    NOT_FOUND_RESOURCE = "NOT_FOUND_RESOURCE"

    # Vector store
    STORE_NOT_READY = "STORE_NOT_READY"
    STORE_OPERATION_FAILED = "STORE_OPERATION_FAILED"

    # Embedding service
    EMBEDDING_UNAVAILABLE = "EMBEDDING_UNAVAILABLE"
    EMBEDDING_FAILED = "EMBEDDING_FAILED"

    # Generation service
    GENERATION_UNAVAILABLE = "GENERATION_UNAVAILABLE"
    GENERATION_FAILED = "GENERATION_FAILED"
    GENERATION_TIMEOUT = "GENERATION_TIMEOUT"

    # Intent classification
    CLASSIFICATION_AMBIGUOUS = "CLASSIFICATION_AMBIGUOUS"

    # Internal errors (unexpected failures)
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
    INTERNAL_CONFIG_ERROR = "INTERNAL_CONFIG_ERROR"
    INTERNAL_STATE_ERROR = "INTERNAL_STATE_ERROR"
