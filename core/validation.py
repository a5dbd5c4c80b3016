"""
core/validation.py -- Input format rules shared by the flows and the API layer.

These are domain rules, not API contracts. auth/flows.py re-checks every
input with these helpers so malformed data is rejected before any state
change even when a caller bypasses the HTTP layer. api/models.py imports the
same patterns for its Pydantic field constraints.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^[0-9]{10}$"
OTP_LENGTH = 6
OTP_PATTERN = rf"^[0-9]{{{OTP_LENGTH}}}$"

PASSWORD_MIN_LENGTH = 6
# bcrypt only looks at the first 72 bytes, and bcrypt>=5 rejects longer input.
PASSWORD_MAX_BYTES = 72
NAME_MAX_LENGTH = 100

_EMAIL_RE = re.compile(EMAIL_PATTERN)
_PHONE_RE = re.compile(PHONE_PATTERN)
_OTP_RE = re.compile(OTP_PATTERN)


def normalize_email(email: str) -> str:
    """Emails are unique case-insensitively; store and compare lower-cased."""
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(email) and _EMAIL_RE.match(email) is not None


def is_valid_phone(phone: str) -> bool:
    return bool(phone) and _PHONE_RE.match(phone) is not None


def is_valid_otp(code: str) -> bool:
    return bool(code) and _OTP_RE.match(code) is not None


def password_problem(password: str, label: str = "Password") -> str | None:
    """Return a human-readable reason the password is unacceptable, or None."""
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        return f"{label} must be at least {PASSWORD_MIN_LENGTH} characters"
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return f"{label} must be at most {PASSWORD_MAX_BYTES} bytes"
    return None


def registration_problem(name: str, email: str, phone: str, password: str) -> str | None:
    """Check all registration fields; return the first problem found or None."""
    if not name or not name.strip():
        return "Name is required"
    if len(name) > NAME_MAX_LENGTH:
        return f"Name must be at most {NAME_MAX_LENGTH} characters"
    if not is_valid_email(email):
        return "Valid email is required"
    if not is_valid_phone(phone):
        return "Valid 10-digit phone number is required"
    return password_problem(password)
