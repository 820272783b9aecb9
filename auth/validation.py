"""
auth/validation.py -- Input validation and sanitization. Pure functions, no state.

Each validator returns None on success and raises on the first rule broken,
with a message that tells the client which field and which rule. Password
failures raise WeakPassword; every other field raises InvalidInput.

sanitize() runs on every free-text field before validation and storage, so
stored values are already HTML-escaped for downstream renderers. The store
uses bound parameters for every query regardless.
"""

from __future__ import annotations

import html
import re

from auth.errors import InvalidInput, WeakPassword

USERNAME_MIN = 3
USERNAME_MAX = 50
EMAIL_MAX = 254
PASSWORD_MIN = 8
PASSWORD_MAX = 128
NAME_MAX = 100
PASSWORD_SPECIALS = '!@#$%^&*(),.?":{}|<>'

_USERNAME_RE = re.compile(r"[a-zA-Z0-9_-]+")
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}")
_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"[0-9]")
_SPECIAL_RE = re.compile("[" + re.escape(PASSWORD_SPECIALS) + "]")


def sanitize(value: str) -> str:
    """Trim surrounding whitespace and HTML-escape <, >, &, ' and "."""
    return html.escape(value.strip(), quote=True)


def validate_username(username: str) -> None:
    if not username:
        raise InvalidInput("username is required")
    if len(username) < USERNAME_MIN:
        raise InvalidInput(f"username must be at least {USERNAME_MIN} characters long")
    if len(username) > USERNAME_MAX:
        raise InvalidInput(f"username must not exceed {USERNAME_MAX} characters")
    if not _USERNAME_RE.fullmatch(username):
        raise InvalidInput("username can only contain letters, numbers, underscores, and hyphens")


def validate_email(email: str) -> None:
    """Simplified RFC 5322 shape check: local@domain.tld with a 2+ letter TLD."""
    if not email:
        raise InvalidInput("email is required")
    if len(email) > EMAIL_MAX:
        raise InvalidInput("email too long")
    if not _EMAIL_RE.fullmatch(email):
        raise InvalidInput("invalid email format")


def validate_password(password: str) -> None:
    """Enforce length bounds plus one each of upper, lower, digit and special.

    Rules are checked in a fixed order so the message always names the first
    one broken.
    """
    if len(password) < PASSWORD_MIN:
        raise WeakPassword(f"password must be at least {PASSWORD_MIN} characters long")
    if len(password) > PASSWORD_MAX:
        raise WeakPassword(f"password must not exceed {PASSWORD_MAX} characters")
    if not _UPPER_RE.search(password):
        raise WeakPassword("password must contain at least one uppercase letter")
    if not _LOWER_RE.search(password):
        raise WeakPassword("password must contain at least one lowercase letter")
    if not _DIGIT_RE.search(password):
        raise WeakPassword("password must contain at least one number")
    if not _SPECIAL_RE.search(password):
        raise WeakPassword("password must contain at least one special character")


def validate_name(field: str, value: str) -> None:
    """Optional name fields: empty is fine, anything past NAME_MAX is not."""
    if len(value) > NAME_MAX:
        raise InvalidInput(f"{field} must not exceed {NAME_MAX} characters")
