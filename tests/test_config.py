"""Unit tests for core/config.py -- SECRET_KEY policy and bcrypt cost bounds."""

import pytest
from pydantic import ValidationError

from core.config import Settings

_KEY = "k" * 32


def test_debug_without_key_generates_one():
    s = Settings(_env_file=None, debug=True, secret_key="")
    assert len(s.secret_key) >= 32


def test_production_without_key_refuses_to_start():
    with pytest.raises(ValidationError, match="SECRET_KEY must be set"):
        Settings(_env_file=None, debug=False, secret_key="")


def test_short_key_rejected_even_in_debug():
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(_env_file=None, debug=True, secret_key="short")


@pytest.mark.parametrize("rounds", [3, 32])
def test_bcrypt_rounds_out_of_range(rounds):
    with pytest.raises(ValidationError, match="BCRYPT_ROUNDS"):
        Settings(_env_file=None, secret_key=_KEY, bcrypt_rounds=rounds)


def test_short_lived_credential_defaults():
    s = Settings(_env_file=None, secret_key=_KEY)
    assert s.otp_ttl_seconds == 600
    assert s.reset_token_ttl_seconds == 1800
    assert s.uniform_forgot_password_response is False
