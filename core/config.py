"""
core/config.py -- Environment-driven settings for the Grievance Portal auth service.

Every tunable (signing key, TTLs, SMTP relay, rate limits, bcrypt cost) is a
field on Settings and is read from the environment or a .env file, with the
env var named after the field in upper case (otp_ttl_seconds -> OTP_TTL_SECONDS).
Modules read configuration through get_settings(), never os.environ.

get_settings() is cached, so the environment is read once per process.

SECRET_KEY policy:
  DEBUG=true and no key  -> a random key is generated and a warning logged;
                            issued sessions die with the process.
  DEBUG=false and no key -> startup fails.
  Any key under 32 chars -> startup fails.

Layer rule: core/ imports nothing from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("grievance.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'grievance_auth.db'}"


class Settings(BaseSettings):
    """Service settings. Every field has a default so tests need no .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    # Frontend origin. Used for CORS and to build password-reset links.
    client_url: str = "http://localhost:3000"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Session tokens and passwords
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600
    # bcrypt cost factor. Tests lower this to 4 (the bcrypt minimum).
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Short-lived credentials
    # ------------------------------------------------------------------

    otp_ttl_seconds: int = 10 * 60
    otp_purge_interval_seconds: int = 5 * 60
    reset_token_ttl_seconds: int = 30 * 60
    # False keeps the historical behaviour: forgot-password answers 404 for an
    # unknown email. True answers with the same success message either way.
    uniform_forgot_password_response: bool = False

    # ------------------------------------------------------------------
    # Outbound mail (SMTP)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    email_from: str = "Grievance Portal <no-reply@localhost>"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    otp_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def check_security_settings(self) -> "Settings":
        """Apply the SECRET_KEY policy and bound the bcrypt cost factor."""
        if not self.secret_key:
            if not self.debug:
                raise ValueError("SECRET_KEY must be set unless DEBUG=true.")
            self.secret_key = secrets.token_hex(32)
            logger.warning("SECRET_KEY not set; generated a throwaway key for this DEBUG process")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings instance (built on first call)."""
    return Settings()
