"""
api/routes/v1/auth.py -- Credential REST endpoints.

Routes:
  POST /api/v1/auth/register                   -- create account; sets JWT cookie; 201
  POST /api/v1/auth/login                      -- email/phone + password; sets JWT cookie
  POST /api/v1/auth/verify-otp                 -- confirm email with the 6-digit code (requires auth)
  POST /api/v1/auth/resend-otp                 -- issue a new code (requires auth)
  POST /api/v1/auth/forgot-password            -- email a reset link
  PUT  /api/v1/auth/reset-password/{token}     -- spend reset token on a new password; sets JWT cookie
  GET  /api/v1/auth/me                         -- current user profile (requires auth)
  PUT  /api/v1/auth/update-profile             -- edit name/phone/address/location (requires auth)
  PUT  /api/v1/auth/update-password            -- change password (requires auth); sets JWT cookie
  POST /api/v1/auth/logout                     -- clears cookie (requires auth); no server-side revocation

Every handler delegates to CredentialFlows (app.state.flows) and only
translates the FlowResult: success -> response model, failure -> HTTPException
with the status from _STATUS_BY_KIND. Handlers are plain `def` because the
flows do blocking bcrypt and DB work; FastAPI runs them in its thread pool.

Security:
  POST /login and POST /verify-otp are rate-limited per client IP (slowapi).
  A 6-digit code has only 10^6 values and a wrong guess does not burn it.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    OtpRequest,
    ProfileResponse,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.errors import ErrorKind
from auth.flows import CredentialFlows
from auth.models import FlowResult, User
from auth.tokens import set_auth_cookie
from core.config import get_settings

_settings = get_settings()

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NOT_FOUND_OR_EXPIRED: 400,
}

router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an unverified account and email a verification code.

    The account is signed in immediately; verify-otp flips is_verified.
    Delivery failure is logged server-side and does not fail the request.
    """
    result = _flows(request).register(
        name=body.name,
        email=body.email,
        phone=body.phone,
        password=body.password,
        address=body.address,
        location=body.location,
    )
    return _auth_response(_unwrap(result), status_code=201)


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email or phone and password; set JWT cookie.

    Wrong password and unknown account share the same 401 "bad credentials"
    answer. A deactivated account with the right password gets 403.
    """
    result = _flows(request).login(body.email_or_phone, body.password)
    return _auth_response(_unwrap(result, no_store=True))


@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Email a single-use reset link valid for RESET_TOKEN_TTL_SECONDS."""
    result = _unwrap(_flows(request).forgot_password(body.email))
    return MessageResponse(message=result.message)


@router.put("/auth/reset-password/{reset_token}", response_model=AuthResponse)
def reset_password(request: Request, reset_token: str, body: ResetPasswordRequest) -> JSONResponse:
    """Set a new password using the token from the reset link.

    Wrong, expired and already-used tokens all get the same 400 answer.
    """
    result = _flows(request).reset_password(reset_token, body.password)
    return _auth_response(_unwrap(result, no_store=True))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.otp_rate_limit)
@router.post("/auth/verify-otp", response_model=MessageResponse)
def verify_otp(
    request: Request,
    body: OtpRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Confirm the caller's email address with the code they were sent."""
    result = _unwrap(_flows(request).verify_email(current_user.id, body.otp))
    return MessageResponse(message=result.message)


@router.post("/auth/resend-otp", response_model=MessageResponse)
def resend_otp(request: Request, current_user: User = Depends(get_current_user)) -> MessageResponse:
    """Send a fresh code. The previous code stops working immediately."""
    result = _unwrap(_flows(request).resend_otp(current_user.id))
    return MessageResponse(message=result.message)


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the profile of the currently authenticated user."""
    result = _unwrap(_flows(request).get_profile(current_user.id))
    return UserResponse.model_validate(result.user)


@router.put("/auth/update-profile", response_model=ProfileResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
) -> ProfileResponse:
    result = _unwrap(
        _flows(request).update_profile(
            current_user.id,
            name=body.name,
            phone=body.phone,
            address=body.address,
            location=body.location,
        )
    )
    return ProfileResponse(message=result.message, user=UserResponse.model_validate(result.user))


@router.put("/auth/update-password", response_model=AuthResponse)
def update_password(
    request: Request,
    body: UpdatePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Change password after re-checking the current one; issues a fresh token."""
    result = _flows(request).update_password(current_user.id, body.current_password, body.new_password)
    return _auth_response(_unwrap(result, no_store=True))


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Clear the JWT cookie. The token itself stays valid until it expires."""
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    resp.delete_cookie("access_token")
    return resp


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _flows(request: Request) -> CredentialFlows:
    return request.app.state.flows


def _unwrap(result: FlowResult, no_store: bool = False) -> FlowResult:
    """Return a successful result unchanged; turn a failure into an HTTPException."""
    if result.ok:
        return result
    raise HTTPException(
        status_code=_STATUS_BY_KIND.get(result.error, 400),
        detail={"code": result.error.value, "message": result.message},
        headers={"Cache-Control": "no-store"} if no_store else None,
    )


def _auth_response(result: FlowResult, status_code: int = 200) -> JSONResponse:
    """Build the token-bearing response and mirror the token into the auth cookie."""
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            message=result.message,
            access_token=result.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            user=UserResponse.model_validate(result.user) if result.user is not None else None,
        ).model_dump(),
    )
    set_auth_cookie(resp, result.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp
