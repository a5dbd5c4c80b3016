"""
auth/passwords.py -- Password hashing (bcrypt, direct usage, no passlib wrapper).

bcrypt is the right choice for low-entropy secrets because its cost factor
makes brute force expensive. gensalt() draws a fresh salt on every call, so
hashing the same password twice yields two different digests that both
verify.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection feeds bcrypt a >72 byte password, which bcrypt 4.x rejects.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

from auth.errors import MalformedHashError
from core.config import get_settings
from core.validation import PASSWORD_MAX_BYTES

_settings = get_settings()


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Length limits (at most 72 bytes) are enforced by core.validation before
    a password ever reaches this function.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A digest bcrypt cannot parse raises MalformedHashError instead of
    returning False. The dummy check before raising keeps the malformed path
    as slow as a genuine mismatch.

    Input over PASSWORD_MAX_BYTES can never match a stored hash (registration
    refuses such passwords) and newer bcrypt releases reject it outright, so
    it is answered False without hashing.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > PASSWORD_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
    except ValueError as exc:
        bcrypt.checkpw(encoded, DUMMY_HASH.encode("utf-8"))
        raise MalformedHashError("Stored password hash is not a valid bcrypt digest.") from exc


# Timing equalization dummy hash. Computed once at module load so the first
# login attempt is not measurably slower than subsequent ones. Login runs
# verify_password() against it when the identifier matches no user.
DUMMY_HASH: str = hash_password("grievance_timing_dummy")
