"""
auth/errors.py -- Error taxonomy for the auth subsystem.

Every failure the service reports to a caller is an AuthError subclass that
already knows its HTTP status, machine-readable code, and client-safe
message. The api/ layer renders them through one exception handler into the
standard {"error": {...}} envelope; nothing in auth/ imports FastAPI.

Messages on Unauthorized, InvalidToken/TokenExpired and InternalError are
deliberately generic. Detail for internal failures goes to the log, never to
the client.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class. Subclasses override status_code, code and default_message."""

    status_code: int = 400
    code: str = "bad_request"
    default_message: str = "Bad request."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(AuthError):
    """A malformed field. The message names the field and the rule it broke."""

    code = "invalid_input"
    default_message = "Invalid input."


class WeakPassword(AuthError):
    code = "weak_password"
    default_message = "Password does not meet strength requirements."


class Conflict(AuthError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."


class Unauthorized(AuthError):
    status_code = 401
    code = "unauthorized"
    default_message = "Unauthorized"


class RateLimited(AuthError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many requests. Please try again later."

    def __init__(self, message: str | None = None, retry_after: int = 60) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class InvalidToken(AuthError):
    code = "invalid_token"
    default_message = "Invalid or expired reset token."


class TokenExpired(AuthError):
    code = "token_expired"
    default_message = "Invalid or expired reset token."


class InternalError(AuthError):
    status_code = 500
    code = "internal_error"
    default_message = "Internal server error"
