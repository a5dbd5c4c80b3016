"""
auth/tokens.py -- Signed session tokens (JWT) and the auth cookie helper.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the user id (sub), role, issue time and expiry. There is no
       server-side session record: a token is valid exactly when its
       signature checks out and exp is in the future. Verification returns
       None on any failure -- the route layer turns that into a 401.

  Revocation: none. Logout clears the cookie only; a leaked token stays
       valid until exp. Keep token_expire_seconds short.

  SECRET_KEY: sourced from core.config.get_settings(), validated at startup
       (>= 32 chars, required outside DEBUG).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("grievance.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "role", "exp")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, role: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT binding a user id and role with an expiry.

    Args:
        user_id:        Numeric user ID stored in the DB.
        role:           User role claim ("citizen", "officer", "admin").
        expire_seconds: Token lifetime in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    issued = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": issued,
        "exp": issued + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the claims dict or None on any failure.

    Rejects bad signatures, malformed tokens, expired tokens and tokens that
    lack the sub/role/exp claims. On success the returned dict carries an
    int "user_id" alongside the raw claims.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError as exc:
        logger.debug("Session token rejected: %s", exc)
        return None
    if any(claim not in payload for claim in _REQUIRED_CLAIMS):
        logger.debug("Session token missing required claims")
        return None
    try:
        payload["user_id"] = int(payload["sub"])
    except (TypeError, ValueError):
        return None
    return payload


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
