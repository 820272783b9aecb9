"""
api/routes/v1/auth.py -- Authentication, password reset and profile endpoints.

Routes:
  POST /api/auth/signup            -- create account; 201
  POST /api/auth/login             -- password login; returns bearer token
  POST /api/auth/logout            -- revoke the presented session
  GET  /api/auth/validate          -- token check for sibling services; always 200
  POST /api/auth/forgot-password   -- request a reset token; always 200
  POST /api/auth/reset-password    -- set a new password with a reset token
  GET  /api/auth/profile           -- current user's profile (requires session)
  PUT  /api/auth/profile           -- partial profile update (requires session)

Handlers are plain `def`: AuthService calls block on bcrypt and the
database, so FastAPI runs them in its thread pool.

Errors: AuthService raises AuthError subclasses; api/main.py renders them
into the standard error envelope with the right status. Handlers only map
successful results to response models.

Security:
  [C1] Login and forgot-password collapse distinct outcomes into one
       response -- see auth/service.py. Do not add branches here that
       reintroduce the distinction.
  [M5] Cache-Control: no-store on login responses.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProfileResponse,
    ResetPasswordRequest,
    SignupRequest,
    SignupResponse,
    UpdateProfileRequest,
    ValidateResponse,
)
from auth.dependencies import bearer_token, client_address, get_auth_service
from auth.service import AuthService

# Auth policy:
# - POST /api/auth/signup, /login, /forgot-password, /reset-password: public
# - GET  /api/auth/validate: public, exempt from the flood guard (polled)
# - POST /api/auth/logout, GET/PUT /api/auth/profile: require a live session
router = APIRouter()


@router.post("/auth/signup", response_model=SignupResponse, status_code=201)
def signup(
    body: SignupRequest,
    client: str = Depends(client_address),
    service: AuthService = Depends(get_auth_service),
) -> SignupResponse:
    """Register a new user. 400 on invalid fields, 409 on duplicate, 429 when throttled."""
    user = service.signup(
        client,
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return SignupResponse(user_id=user.id, username=user.username, email=user.email)


@router.post("/auth/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    client: str = Depends(client_address),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with username and password; return a bearer token.

    Wrong username and wrong password produce the same 401 body.
    """
    result = service.login(client, body.username, body.password, remember_me=body.remember_me)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=result.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            user_id=result.user.id,
            username=result.user.username,
            expires_at=result.expires_at,
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    token: str = Depends(bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke the session named by the Authorization header."""
    service.logout(token)
    return MessageResponse(message="Logged out successfully")


@router.get("/auth/validate", response_model=ValidateResponse, response_model_exclude_none=True)
@limiter.exempt
def validate(
    token: str = Depends(bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> ValidateResponse:
    """Report whether the presented token is a live session.

    Never returns an error status -- sibling services poll this and only
    read the boolean.
    """
    user_id = service.validate_token(token)
    if user_id is None:
        return ValidateResponse(valid=False)
    return ValidateResponse(valid=True, user_id=user_id)


@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Start a password reset. The response never reveals whether the email exists."""
    return MessageResponse(message=service.forgot_password(body.email))


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Complete a password reset. Signs the user out of every existing session."""
    service.reset_password(body.token, body.password)
    return MessageResponse(message="Password reset successful")


@router.get("/auth/profile", response_model=ProfileResponse)
def get_profile(
    token: str = Depends(bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    return ProfileResponse.from_user(service.get_profile(token))


@router.put("/auth/profile", response_model=ProfileResponse)
def update_profile(
    body: UpdateProfileRequest,
    token: str = Depends(bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    """Partial update: only fields present and non-null in the body change."""
    user = service.update_profile(token, body.model_dump(exclude_none=True))
    return ProfileResponse.from_user(user)
