"""
auth/otp.py -- One-time passcodes for email verification.

OTPRegistry holds at most one outstanding code per identifier (an email
address or phone number). Codes live in process memory only: a restart
invalidates every pending code, which is acceptable for a 10 minute TTL.

Concurrency:
  Every read and write of the backing dict happens under a single
  threading.Lock. verify() looks up, checks expiry, compares and deletes
  while holding the lock, so two requests presenting the same valid code
  cannot both succeed -- the second one finds no entry.

Expiry:
  Expired entries are evicted lazily by verify() and in bulk by
  purge_expired(), which api/main.py runs on a timer. Either way an expired
  entry is never reported valid.

The clock is injectable (a zero-arg callable returning UNIX seconds) so
tests can step time across the expiry boundary without sleeping.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
import secrets
import threading
import time
from collections.abc import Callable

from auth.models import OTPCheck, OTPEntry
from core.validation import OTP_LENGTH

DEFAULT_OTP_TTL = 10 * 60


def generate_otp() -> str:
    """Return a uniformly random 6-digit code, zero-padded ("000000".."999999")."""
    return f"{secrets.randbelow(10**OTP_LENGTH):0{OTP_LENGTH}d}"


class OTPRegistry:
    """Thread-safe store of outstanding one-time passcodes.

    Usage:
        registry = OTPRegistry()
        code = generate_otp()
        registry.issue("a@x.com", code)
        registry.verify("a@x.com", code)   # OTPCheck(valid=True, ...)
        registry.verify("a@x.com", code)   # OTPCheck(valid=False, ...) -- consumed
    """

    def __init__(self, ttl_seconds: int = DEFAULT_OTP_TTL, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, OTPEntry] = {}
        self._lock = threading.Lock()

    def issue(self, identifier: str, code: str, ttl_seconds: int | None = None) -> OTPEntry:
        """Store code for identifier, replacing any earlier unconsumed code."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        entry = OTPEntry(identifier=identifier, code=code, expires_at=self._clock() + ttl)
        with self._lock:
            self._entries[identifier] = entry
        return entry

    def verify(self, identifier: str, code: str) -> OTPCheck:
        """Atomically check and consume the code for identifier.

        A wrong code leaves the entry in place so the user can retry until
        it expires. Matching and expired entries are deleted.
        """
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None:
                return OTPCheck(valid=False, reason="OTP not found or expired")
            if self._clock() > entry.expires_at:
                del self._entries[identifier]
                return OTPCheck(valid=False, reason="OTP expired")
            if not hmac.compare_digest(entry.code.encode("utf-8"), code.encode("utf-8")):
                return OTPCheck(valid=False, reason="Invalid OTP")
            del self._entries[identifier]
            return OTPCheck(valid=True, reason="OTP verified successfully")

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of entries removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
