"""
auth/errors.py -- Error taxonomy for the credential core.

Expected failures (wrong password, expired OTP, duplicate email, ...) are
NOT exceptions: flows return a FlowResult carrying an ErrorKind and the API
layer maps the kind to an HTTP status. Exceptions are reserved for the two
cases that are not a user-facing outcome:

  MalformedHashError -- a stored password digest cannot be parsed. This is
      data corruption, not a wrong password, and surfaces as a 500.
  DeliveryError -- the mail channel failed. Flows log it and continue; the
      state transition that preceded delivery is never rolled back.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    CONFLICT = "conflict"
    AUTHENTICATION = "authentication_failed"
    AUTHORIZATION = "authorization_failed"
    NOT_FOUND = "not_found"
    # OTP and reset-token failures deliberately share one kind so callers
    # cannot tell "never existed" from "expired".
    NOT_FOUND_OR_EXPIRED = "not_found_or_expired"


class MalformedHashError(ValueError):
    """Raised by verify_password() when the stored digest is not a bcrypt hash."""


class DeliveryError(RuntimeError):
    """Raised by a mailer when a message could not be handed to the transport."""
