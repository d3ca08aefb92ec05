"""Error taxonomy shared by handlers, the router and the middlewares.

Every error renders to the same envelope::

    {"status": "error", "code": "UPPER_SNAKE_CASE", "message": "human text"}
"""

from typing import Any

from fastapi import status
from fastapi.responses import JSONResponse


def error_response(
    code: str,
    message: str,
    status_code: int,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build an error envelope response."""
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "code": code, "message": message},
        headers=headers,
    )


class ApiError(Exception):
    """Base class for errors that map onto a structured JSON response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "INTERNAL_ERROR"
    default_message: str = "An internal error occurred"

    def __init__(self, code: str | None = None, message: str | None = None, **extra: Any):
        self.code = code or self.default_code
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        content = {"status": "error", "code": self.code, "message": self.message, **self.extra}
        return JSONResponse(status_code=self.status_code, content=content)


class ValidationError(ApiError):
    """Bad input shape or format."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class AuthError(ApiError):
    """Missing, invalid or revoked credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "UNAUTHORIZED"
    default_message = "Authentication required"


class ForbiddenError(ApiError):
    """Authenticated but lacking privilege."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"
    default_message = "Access denied"


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"
    default_message = "Resource already exists"


class DatabaseError(ApiError):
    """Store failure. The underlying detail is logged, never returned."""

    default_code = "DATABASE_ERROR"
    default_message = "A database error occurred"


class InternalError(ApiError):
    default_code = "INTERNAL_ERROR"
    default_message = "An internal error occurred"


# Authentication failures raised by the session validator. The router logs
# the concrete reason and answers with a generic 401.


class MissingTokenError(AuthError):
    default_message = "No token presented"


class InvalidTokenError(AuthError):
    default_message = "Invalid token"


class TokenExpiredError(AuthError):
    default_message = "Token has expired"


class SessionNotFoundError(AuthError):
    default_message = "Session not found or expired"


class IpMismatchError(AuthError):
    default_message = "Request IP does not match session"


class UserAgentMismatchError(AuthError):
    default_message = "User-Agent does not match session"
