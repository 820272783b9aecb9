"""
auth/dependencies.py -- FastAPI Depends() helpers for the auth routes.

bearer_token() reads the Authorization header. Sibling services send the raw
token; browsers and API clients send "Bearer <token>". Both are accepted.

client_address() is the rate-limit identity. It reuses slowapi's
get_remote_address so the action-specific RateLimiter and the global slowapi
flood guard always agree on who the client is.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
Nothing else in auth/ does.
"""

from __future__ import annotations

from fastapi import Request
from slowapi.util import get_remote_address

from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    """Return the process-wide AuthService built in the API lifespan."""
    return request.app.state.auth_service


def bearer_token(request: Request) -> str:
    """Return the token from the Authorization header, or "" if there is none."""
    header = request.headers.get("Authorization", "").strip()
    if header[:7].lower() == "bearer ":
        return header[7:].strip()
    return header


def client_address(request: Request) -> str:
    return get_remote_address(request) or "unknown"
