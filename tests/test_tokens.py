"""Unit tests for auth/tokens.py -- session token issue and verification.

Covers:
- round trip carries user id and role
- tampered signature, foreign key, garbage input and expired tokens -> None
- tokens missing required claims -> None
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from auth.tokens import create_access_token, decode_access_token
from core.config import get_settings


def _encode(payload: dict, key: str | None = None) -> str:
    return jwt.encode(payload, key or get_settings().secret_key, algorithm="HS256")


def test_token_carries_identity_and_role():
    claims = decode_access_token(create_access_token(42, "citizen"))
    assert claims["user_id"] == 42
    assert claims["sub"] == "42"
    assert claims["role"] == "citizen"
    assert claims["exp"] > claims["iat"]


def test_custom_lifetime_is_honoured():
    claims = decode_access_token(create_access_token(1, "admin", expire_seconds=60))
    assert claims["exp"] - claims["iat"] == 60


def test_tampered_token_is_rejected():
    token = create_access_token(1, "citizen")
    head, body, sig = token.split(".")
    forged = ".".join([head, body, sig[:-2] + ("AA" if not sig.endswith("AA") else "BB")])
    assert decode_access_token(forged) is None


def test_token_signed_with_other_key_is_rejected():
    exp = datetime.now(timezone.utc) + timedelta(minutes=5)
    token = _encode({"sub": "1", "role": "admin", "exp": exp}, key="x" * 64)
    assert decode_access_token(token) is None


def test_expired_token_is_rejected():
    exp = datetime.now(timezone.utc) - timedelta(seconds=1)
    assert decode_access_token(_encode({"sub": "1", "role": "citizen", "exp": exp})) is None


def test_missing_claims_are_rejected():
    exp = datetime.now(timezone.utc) + timedelta(minutes=5)
    assert decode_access_token(_encode({"sub": "1", "exp": exp})) is None
    assert decode_access_token(_encode({"sub": "not-a-number", "role": "citizen", "exp": exp})) is None


def test_garbage_is_rejected():
    assert decode_access_token("not.a.jwt") is None
    assert decode_access_token("") is None
