"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across the API
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data
4. No sensitive data leaks in error messages

The workflow engine raises these; the API boundary maps them to HTTP
responses in quickdesk.core.exception_handlers.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to the error envelope.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {"password", "token", "secret", "key", "api_key"}
        filtered_context = {
            k: _jsonable(v)
            for k, v in self.context.items()
            if k.lower() not in sensitive_fields
        }

        return {
            "success": False,
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


def _jsonable(value: Any) -> Any:
    """Context values may be UUIDs or enums; the response body needs plain JSON."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when the caller cannot be identified.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication failed"


class TokenExpiredError(AuthenticationError):
    """Raised when a bearer token's exp claim has passed."""

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """Raised when a bearer token is malformed or has a bad signature."""

    default_message = "Token is invalid"


class AuthorizationError(AppException):
    """
    Raised when an authenticated principal may not act on the target.

    WHY: Distinguishing authorization (403) from authentication (401) lets
    clients tell "log in again" apart from "you can't touch this ticket".
    Covers both role gates (assign, admin user management) and the
    ticket visibility rule for end users.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "You do not have permission to perform this action"


# ============================================================================
# Validation & Input Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    Field lengths, enum values, unresolvable category or assignee.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


class InvalidIdentifierError(ValidationError):
    """
    Raised when an entity id is not syntactically well-formed.

    WHY: Kept apart from ResourceNotFoundError so clients can tell a typo'd
    id from a ticket that was deleted.

    HTTP Status: 400 Bad Request
    """

    default_message = "Invalid identifier format"


class UploadError(ValidationError):
    """
    Raised when uploaded files break the count, size or type limits.

    HTTP Status: 400 Bad Request
    """

    default_message = "Invalid upload"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class TicketNotFoundError(ResourceNotFoundError):
    """Raised when a ticket id does not resolve."""

    default_message = "Ticket not found"


class CommentNotFoundError(ResourceNotFoundError):
    """Raised when a comment id does not resolve on the given ticket."""

    default_message = "Comment not found"


class UserNotFoundError(ResourceNotFoundError):
    """Raised when a user id does not resolve."""

    default_message = "User not found"


class ConflictError(AppException):
    """
    Raised when a write lost a race against a concurrent write.

    Only surfaces when two requests insert with the same idempotency key at
    the same moment; retrying the request returns the stored entity.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Conflicting concurrent request"


# ============================================================================
# External Service Exceptions
# ============================================================================


class ExternalServiceError(AppException):
    """
    Base exception for collaborator failures (mail provider, object store).

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class EmailServiceError(ExternalServiceError):
    """
    Raised when an email cannot be rendered or sent.

    WHY: Never reaches a client. The notification dispatcher catches and
    logs it so ticket writes are unaffected.
    """

    default_message = "Email service error"


class StorageError(ExternalServiceError):
    """Raised when attachment storage (S3) rejects an upload."""

    default_message = "File storage error"
