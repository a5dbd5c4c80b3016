"""
auth/reset_tokens.py -- Single-use password-reset tokens.

The plaintext token (secrets.token_hex(20), 160 bits) leaves the process
exactly once, inside the reset link. Only its SHA-256 digest and an expiry
are written to the user row. A fast unsalted hash is fine here for the same
reason it is fine for API keys: the input is long and random, so there is
nothing to brute-force, and a deterministic digest allows an indexed lookup.

consume() claims a token through UserStore.claim_reset_token(), which
clears the stored digest with an UPDATE conditioned on the digest still
being present. Of two concurrent resets presenting the same token, exactly
one sees rowcount == 1; the other gets None, the same answer as a wrong or
expired token.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("grievance.auth")

DEFAULT_RESET_TTL = 30 * 60


def generate_reset_token() -> str:
    """Return a new reset token: 20 random bytes as 40 hex characters."""
    return secrets.token_hex(20)


def hash_reset_token(token: str) -> str:
    """Return the SHA-256 hex digest stored in place of the token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class ResetTokenService:
    def __init__(
        self,
        store: UserStore,
        ttl_seconds: int = DEFAULT_RESET_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, user: User) -> str:
        """Persist a fresh token digest on the user's row and return the plaintext.

        Any earlier outstanding token for the same user is overwritten and
        stops working.
        """
        token = generate_reset_token()
        expires = self._clock() + self.ttl_seconds
        self.store.set_reset_token(user.id, hash_reset_token(token), expires)
        logger.info("Reset token issued for user_id=%s", user.id)
        return token

    def consume(self, token: str, new_hashed_password: str | None = None) -> User | None:
        """Claim the token. Returns the owning User, or None if invalid or expired.

        new_hashed_password, when given, is stored by the same guarded UPDATE
        that clears the digest and expiry. If that write fails the token
        stays pending.
        """
        if not token:
            return None
        return self.store.claim_reset_token(hash_reset_token(token), self._clock(), new_hashed_password)
