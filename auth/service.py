"""
auth/service.py -- AuthService: the signup / login / session / reset flows.

Every flow follows the same order: rate limit first (reject fast), then
sanitize and validate input, then touch hashing and persistence. Failures
leave as AuthError subclasses; the api/ layer maps them to HTTP.

Anti-enumeration [C1]:
  login() returns one identical Unauthorized for "no such user" and "wrong
  password", and runs a dummy bcrypt check in the first case so both paths
  cost the same.

  forgot_password() returns the same message for malformed, unknown and
  known emails. A token is generated on every call, so the unknown-email
  path does the same entropy work as the known one; only the insert and the
  notification are conditional.

Persistence failures (StoreError) are logged here with detail and surfaced
as a generic InternalError. Nothing is retried.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from auth.errors import (
    Conflict,
    InternalError,
    InvalidInput,
    InvalidToken,
    RateLimited,
    TokenExpired,
    Unauthorized,
)
from auth.models import User
from auth.notifier import LoggingNotifier, ResetNotifier
from auth.passwords import PasswordHasher
from auth.ratelimit import RateLimiter, RateLimitPolicy
from auth.resets import ResetTokenManager
from auth.sessions import SessionManager, utc_now
from auth.store import StoreConflict, StoreError, UserStore
from auth.tokens import TokenHasher, generate_token
from auth.validation import sanitize, validate_email, validate_name, validate_password, validate_username
from core.config import Settings

logger = logging.getLogger("mizon.auth.service")

INVALID_CREDENTIALS = "Invalid credentials"
FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent"

PROFILE_FIELDS = ("email", "first_name", "last_name")

DEFAULT_LOGIN_POLICY = RateLimitPolicy(max_attempts=5, window_seconds=60)
DEFAULT_SIGNUP_POLICY = RateLimitPolicy(max_attempts=3, window_seconds=60 * 60)


@dataclass(frozen=True)
class LoginResult:
    user: User
    token: str
    expires_at: datetime


class AuthService:
    """Orchestrates Validator, PasswordHasher, RateLimiter, SessionManager and
    ResetTokenManager over one UserStore.

    The rate limiter is owned by the instance, not a module global, so tests
    build isolated services and a shared-store limiter can be swapped in
    without touching call sites.
    """

    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        sessions: SessionManager,
        resets: ResetTokenManager,
        limiter: RateLimiter | None = None,
        notifier: ResetNotifier | None = None,
        login_policy: RateLimitPolicy = DEFAULT_LOGIN_POLICY,
        signup_policy: RateLimitPolicy = DEFAULT_SIGNUP_POLICY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.sessions = sessions
        self.resets = resets
        self.limiter = limiter or RateLimiter()
        self.notifier = notifier or LoggingNotifier()
        self.login_policy = login_policy
        self.signup_policy = signup_policy
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _persistence(self, action: str, conflict: str | None = None) -> Iterator[None]:
        """Translate StoreError raised inside the block into an AuthError.

        StoreConflict becomes Conflict(conflict) when a conflict message is
        given; everything else is logged and becomes InternalError.
        """
        try:
            yield
        except StoreConflict as exc:
            if conflict is None:
                logger.error("Unexpected conflict while %s: %s", action, exc)
                raise InternalError() from exc
            raise Conflict(conflict) from exc
        except StoreError as exc:
            logger.error("Error %s: %s", action, exc)
            raise InternalError() from exc

    def _admit(self, client: str, action: str, policy: RateLimitPolicy, message: str) -> None:
        key = f"{client}:{action}"
        if not self.limiter.check(key, policy):
            logger.warning("Rate limit hit: action=%s client=%s", action, client)
            raise RateLimited(message, retry_after=self.limiter.retry_after(key, policy.window_seconds))

    def _require_session(self, token: str) -> str:
        try:
            return self.sessions.resolve(token)
        except (InvalidToken, TokenExpired) as exc:
            raise Unauthorized() from exc

    # ------------------------------------------------------------------
    # Signup / login / logout
    # ------------------------------------------------------------------

    def signup(
        self,
        client: str,
        username: str,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
    ) -> User:
        """Register a new account and return it. Does not log the user in."""
        self._admit(client, "signup", self.signup_policy, "Too many signup attempts. Please try again later.")

        username = sanitize(username)
        email = sanitize(email)
        first_name = sanitize(first_name)
        last_name = sanitize(last_name)

        validate_username(username)
        validate_email(email)
        validate_password(password)
        validate_name("first_name", first_name)
        validate_name("last_name", last_name)

        with self._persistence("checking for existing user"):
            if self.store.find_user_by_username(username) is not None:
                raise Conflict("Username already exists")
            if self.store.find_user_by_email(email) is not None:
                raise Conflict("Email already exists")

        password_hash = self.hasher.hash(password)

        with self._persistence("creating user", conflict="Username or email already exists"):
            user_id = self.store.insert_user(
                User(
                    username=username,
                    email=email,
                    password_hash=password_hash,
                    first_name=first_name,
                    last_name=last_name,
                )
            )
            created = self.store.get_user(user_id)
        if created is None:
            logger.error("User %s not found after insert", user_id)
            raise InternalError()
        logger.info("User created: id=%s username=%s", created.id, created.username)
        return created

    def login(self, client: str, username: str, password: str, remember_me: bool = False) -> LoginResult:
        """Check credentials and open a session.

        Unknown username and wrong password raise the identical
        Unauthorized(INVALID_CREDENTIALS) after the same amount of bcrypt work.
        """
        self._admit(client, "login", self.login_policy, "Too many login attempts. Please try again later.")

        username = sanitize(username)
        with self._persistence("looking up user for login"):
            user = self.store.find_user_by_username(username) if username else None

        if user is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self.hasher.dummy_verify(password)
            logger.info("Failed login from %s", client)
            raise Unauthorized(INVALID_CREDENTIALS)
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Failed login from %s", client)
            raise Unauthorized(INVALID_CREDENTIALS)

        token, expires_at = self.sessions.create(user.id, remember_me)
        return LoginResult(user=user, token=token, expires_at=expires_at)

    def logout(self, token: str) -> None:
        """Revoke the caller's session. A missing, unknown or expired token is Unauthorized."""
        if not token:
            raise Unauthorized()
        try:
            self.sessions.resolve(token)
        except TokenExpired as exc:
            self.sessions.revoke(token)
            raise Unauthorized() from exc
        except InvalidToken as exc:
            raise Unauthorized() from exc
        self.sessions.revoke(token)

    def validate_token(self, token: str) -> str | None:
        """Return the user id behind token, or None for any failure at all.

        Used by sibling services that poll for token validity; they never see
        an error, only a yes/no.
        """
        try:
            return self.sessions.resolve(token)
        except (InvalidToken, TokenExpired):
            return None
        except InternalError:
            logger.warning("Token validation degraded to invalid due to an internal error")
            return None

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> str:
        """Issue a reset token if email belongs to a user. Always returns the same message."""
        email = sanitize(email)
        token = generate_token()
        try:
            validate_email(email)
        except InvalidInput:
            return FORGOT_PASSWORD_MESSAGE

        with self._persistence("looking up user for password reset"):
            user = self.store.find_user_by_email(email)
        if user is None:
            return FORGOT_PASSWORD_MESSAGE

        self.resets.issue(user.id, token)
        try:
            self.notifier(user, token)
        except Exception:
            # The token is stored; a failed delivery must not change the
            # response or the user could tell this email exists.
            logger.exception("Reset token delivery failed for user %s", user.id)
        return FORGOT_PASSWORD_MESSAGE

    def reset_password(self, token: str, new_password: str) -> None:
        """Set a new password through a reset token, then sign out every session.

        The token is consumed before the password changes, so a failure past
        that point needs a fresh forgot-password request.
        """
        validate_password(new_password)
        user_id = self.resets.consume(token)
        password_hash = self.hasher.hash(new_password)

        with self._persistence("updating password"):
            updated = self.store.update_user(user_id, {"password_hash": password_hash})
        if not updated:
            logger.warning("Reset token referenced missing user %s", user_id)
            raise InvalidToken()

        try:
            self.sessions.revoke_all(user_id)
        except InternalError:
            logger.warning("Password for user %s was reset but existing sessions could not be revoked", user_id)
        logger.info("Password reset completed for user %s", user_id)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, token: str) -> User:
        user_id = self._require_session(token)
        with self._persistence("fetching profile"):
            user = self.store.get_user(user_id)
        if user is None:
            raise Unauthorized()
        return user

    def update_profile(self, token: str, changes: Mapping[str, str | None]) -> User:
        """Apply a partial profile update and return the updated user.

        changes maps field name to new value; None or a missing key leaves the
        field alone. Only email, first_name and last_name are updatable.
        """
        user_id = self._require_session(token)

        fields: dict[str, str] = {}
        for name in PROFILE_FIELDS:
            value = changes.get(name)
            if value is not None:
                fields[name] = sanitize(value)
        if not fields:
            raise InvalidInput("No fields to update")

        if "email" in fields:
            validate_email(fields["email"])
        for name in ("first_name", "last_name"):
            if name in fields:
                validate_name(name, fields[name])

        with self._persistence("updating profile", conflict="Email already in use"):
            if "email" in fields:
                other = self.store.find_user_by_email(fields["email"])
                if other is not None and other.id != user_id:
                    raise Conflict("Email already in use")
            if not self.store.update_user(user_id, fields):
                raise Unauthorized()
            user = self.store.get_user(user_id)
        if user is None:
            raise Unauthorized()
        return user

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired(self) -> tuple[int, int]:
        """Sweep expired sessions and reset tokens, and drop idle limiter keys."""
        with self._persistence("purging expired tokens"):
            removed = self.store.purge_expired(self.clock())
        longest = max(self.login_policy.window_seconds, self.signup_policy.window_seconds)
        self.limiter.prune(longest)
        return removed


def build_auth_service(settings: Settings, store: UserStore) -> AuthService:
    """Wire an AuthService from Settings. Called once per process from the API lifespan."""
    token_hasher = TokenHasher(settings.secret_key)
    return AuthService(
        store=store,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        sessions=SessionManager(
            store,
            token_hasher,
            ttl=timedelta(hours=settings.session_ttl_hours),
            remember_me_ttl=timedelta(days=settings.remember_me_ttl_days),
        ),
        resets=ResetTokenManager(store, token_hasher, ttl=timedelta(minutes=settings.reset_token_ttl_minutes)),
        limiter=RateLimiter(),
        login_policy=RateLimitPolicy(settings.login_max_attempts, settings.login_window_seconds),
        signup_policy=RateLimitPolicy(settings.signup_max_attempts, settings.signup_window_seconds),
    )
