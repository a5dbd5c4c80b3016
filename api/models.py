"""
API request and response models for the Grievance Portal auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field constraints reuse the patterns in core/validation.py. The flows check
the same rules again, so these constraints are a first filter, not the only
one.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from core.validation import EMAIL_PATTERN, NAME_MAX_LENGTH, OTP_PATTERN, PASSWORD_MIN_LENGTH, PHONE_PATTERN

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    phone: str = Field(pattern=PHONE_PATTERN)
    # Upper bound is in bytes and checked by the flow; 72 chars is a loose first cut.
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=72)
    address: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. email_or_phone matches either column."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email_or_phone: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class OtpRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    otp: str = Field(pattern=OTP_PATTERN)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)


class ResetPasswordRequest(BaseModel):
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=72)


class UpdatePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=72)


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/v1/auth/update-profile. Omitted fields are unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX_LENGTH)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    address: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Never includes password or reset-token fields."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str
    email: str
    phone: str
    role: str
    is_verified: bool
    is_active: bool
    address: Optional[str] = None
    location: Optional[str] = None


class AuthResponse(BaseModel):
    """Response for flows that sign the user in (register, login, reset, update-password)."""

    model_config = ConfigDict(frozen=True)

    message: str
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Optional[UserResponse] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ProfileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
