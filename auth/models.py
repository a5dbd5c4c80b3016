"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the OTP
registry and the flow orchestrator do the work; these only own shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.errors import ErrorKind


@dataclass
class User:
    """A registered identity.

    email is stored lower-cased; email and phone are each unique across all
    users (enforced by UNIQUE constraints in auth/store.py).

    reset_token_hash / reset_token_expires are set together by
    ResetTokenService.issue() and cleared together when the token is claimed.
    reset_token_expires is a UNIX timestamp (seconds). The plaintext token is
    never stored anywhere.
    """

    name: str
    email: str
    phone: str
    hashed_password: str
    role: str = "citizen"
    id: int | None = None
    is_verified: bool = False
    is_active: bool = True
    address: str | None = None
    location: str | None = None
    reset_token_hash: str | None = None
    reset_token_expires: float | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class UserSummary:
    """Outward-facing view of a User. Has no password or reset-token fields."""

    id: int
    name: str
    email: str
    phone: str
    role: str
    is_verified: bool
    is_active: bool
    address: str | None = None
    location: str | None = None


@dataclass
class OTPEntry:
    """One outstanding code. expires_at is a UNIX timestamp (seconds)."""

    identifier: str
    code: str
    expires_at: float


@dataclass(frozen=True)
class OTPCheck:
    """Outcome of OTPRegistry.verify()."""

    valid: bool
    reason: str


@dataclass
class FlowResult:
    """Outcome of a credential flow.

    ok=True:  message plus, depending on the flow, a session token and/or a
              UserSummary.
    ok=False: error names the failure kind; message is safe to show the user.
    """

    ok: bool
    message: str
    error: ErrorKind | None = None
    token: str | None = None
    user: UserSummary | None = None

    @classmethod
    def success(cls, message: str, token: str | None = None, user: UserSummary | None = None) -> FlowResult:
        return cls(ok=True, message=message, token=token, user=user)

    @classmethod
    def failure(cls, error: ErrorKind, message: str) -> FlowResult:
        return cls(ok=False, message=message, error=error)
