"""
API request and response models for the auth service REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request fields are plain strings with empty defaults on purpose: field rules
(username shape, email shape, password strength) live in auth/validation.py
so a bad field produces a specific 400 from the service rather than a
generic schema error. The only constraint here is a size cap.
"""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User

# Upper bound on any single text field. Generous versus every validator limit;
# it only stops oversized bodies before they reach sanitize() and bcrypt.
_Text = Annotated[str, Field(max_length=1024)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/auth/signup."""

    username: _Text = ""
    password: _Text = ""
    email: _Text = ""
    first_name: _Text = ""
    last_name: _Text = ""


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    username: _Text = ""
    password: _Text = ""
    remember_me: bool = False


class ForgotPasswordRequest(BaseModel):
    email: _Text = ""


class ResetPasswordRequest(BaseModel):
    token: _Text = ""
    password: _Text = ""


class UpdateProfileRequest(BaseModel):
    """Request body for PUT /api/auth/profile.

    Partial update: omitted or null fields are left unchanged.
    """

    email: Optional[_Text] = None
    first_name: Optional[_Text] = None
    last_name: Optional[_Text] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SignupResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    email: str
    message: str = "User created successfully"


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    user_id: str
    username: str
    expires_at: datetime


class ValidateResponse(BaseModel):
    """Response for GET /api/auth/validate. Always served with HTTP 200."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    user_id: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ProfileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "ProfileResponse":
        """Factory Method -- the mapping lives here, not in each route handler."""
        return cls(
            id=user.id or "",
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            created_at=user.created_at or "",
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
