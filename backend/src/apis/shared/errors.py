"""Shared error models and domain exceptions for consistent error handling across APIs"""

from enum import Enum
from typing import Optional, Dict, Any

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    CONFLICT = "conflict"
    SERVICE_UNAVAILABLE = "service_unavailable"

    # Google linking errors
    NOT_CONNECTED = "not_connected"
    PROVIDER_ERROR = "provider_error"


class ErrorDetail(BaseModel):
    """Structured error detail for API responses"""

    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    detail: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


def create_error_response(
    code: ErrorCode,
    message: str,
    detail: Optional[str] = None,
    status_code: int = 500,
    metadata: Optional[Dict[str, Any]] = None
) -> dict:
    """
    Create a standardized error response dictionary.

    Args:
        code: Error code from ErrorCode enum
        message: User-friendly error message
        detail: Optional technical detail for debugging
        status_code: HTTP status code
        metadata: Optional additional error context

    Returns:
        Dictionary suitable for HTTPException detail
    """
    error = ErrorDetail(
        code=code,
        message=message,
        detail=detail,
        metadata=metadata
    )

    return {
        "error": error.model_dump(exclude_none=True),
        "status_code": status_code
    }


def http_error(
    code: ErrorCode,
    message: str,
    status_code: int,
    detail: Optional[str] = None,
) -> HTTPException:
    """Build an HTTPException carrying a structured error body."""
    body = create_error_response(code, message, detail=detail, status_code=status_code)
    return HTTPException(status_code=status_code, detail=body["error"])


# =============================================================================
# Domain exceptions
# =============================================================================


class GoogleLinkError(Exception):
    """Base class for account-linking and token-lifecycle errors."""


class ProviderError(GoogleLinkError):
    """
    Google returned an error, an unusable response, or could not be reached.

    Attributes:
        error: OAuth error code reported by Google (e.g. ``invalid_grant``), if any
        status_code: HTTP status of the failed response, if any
    """

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.error = error
        self.status_code = status_code


class NotConnectedError(GoogleLinkError):
    """The account has no usable Google connection."""


class ConstraintViolationError(GoogleLinkError):
    """A storage-level uniqueness constraint rejected a write."""
