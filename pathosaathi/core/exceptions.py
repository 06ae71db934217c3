"""
Custom Exceptions

Centralized exception definitions. Every API error derives from ApiError
(an HTTPException) and carries a machine-readable error_code plus optional
details; main.py renders them into the {success, message, error} envelope.
"""
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AuthErrorCode(str, Enum):
    """Error codes returned by the authentication flows."""
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    DOMAIN_MISMATCH = "DOMAIN_MISMATCH"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    PARTNER_INACTIVE = "PARTNER_INACTIVE"
    DOMAIN_NOT_ALLOWED = "DOMAIN_NOT_ALLOWED"
    ROOT_DOMAIN_REQUIRED = "ROOT_DOMAIN_REQUIRED"
    USER_NOT_FOUND = "USER_NOT_FOUND"


class ApiError(HTTPException):
    """Base class for errors that map to an HTTP status."""

    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=self.default_status,
            detail=message or self.default_message,
            headers=headers,
        )
        if isinstance(error_code, Enum):
            error_code = error_code.value
        self.error_code = error_code or self.default_code
        self.details = details

    @property
    def message(self) -> str:
        return self.detail


class ValidationError(ApiError):
    """Raised when input validation fails."""

    default_status = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class AuthenticationError(ApiError):
    """Raised when authentication fails."""

    default_status = status.HTTP_401_UNAUTHORIZED
    default_code = AuthErrorCode.INVALID_CREDENTIALS.value
    default_message = "Could not validate credentials"

    def __init__(self, message: Optional[str] = None, error_code: Optional[str] = None, details: Any = None):
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(ApiError):
    """
    Raised when an authenticated caller may not perform an action.

    Domain/audience mismatches on authenticated requests also land here;
    they should be logged as security events.
    """

    default_status = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"
    default_message = "Access denied"


class NotFoundError(ApiError):
    """Raised when a requested record does not exist."""

    default_status = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(ApiError):
    """Raised on uniqueness violations (email, phone, domain, ...)."""

    default_status = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"
    default_message = "Resource already exists"


class InternalError(ApiError):
    """Raised for server-side failures the caller cannot fix."""


class ModelNotImplementedError(InternalError):
    """Raised when an entity type has no schema registered."""

    default_code = "MODEL_NOT_IMPLEMENTED"

    def __init__(self, entity_name: str):
        super().__init__(f"Model {entity_name} not implemented yet")
        self.entity_name = entity_name


class RateLimitExceeded(ApiError):
    """Raised when rate limit is exceeded."""

    default_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_code = "RATE_LIMITED"
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int = 60, message: Optional[str] = None):
        super().__init__(
            message,
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after
