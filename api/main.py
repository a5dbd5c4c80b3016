"""
api/main.py -- FastAPI application entry point for the Grievance Portal auth service.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the frontend origin
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the credential core (user store, OTP registry, reset-token
service, mailer, flows) on startup, starts the OTP purge task, and tears
everything down symmetrically on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import text

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.flows import CredentialFlows
from auth.mailer import SmtpMailer
from auth.otp import OTPRegistry
from auth.reset_tokens import ResetTokenService
from auth.store import UserStore
from core.config import get_settings

_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("grievance.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Drop expired OTP entries every OTP_PURGE_INTERVAL_SECONDS.

    Only bounds memory: verify() already refuses expired codes on its own.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(_settings.otp_purge_interval_seconds)
        removed = app.state.otp_registry.purge_expired()
        if removed:
            logger.info("Purged %d expired OTP entries", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def build_flows(
    user_store: UserStore, otp_registry: OTPRegistry, mailer, settings=_settings
) -> CredentialFlows:
    """Wire the credential core around an existing store, registry and mailer."""
    reset_tokens = ResetTokenService(user_store, ttl_seconds=settings.reset_token_ttl_seconds)
    return CredentialFlows(user_store, otp_registry, reset_tokens, mailer, settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The purge task is started last because it references
    app.state.otp_registry.
    """
    logger.info("Grievance auth API starting up")
    app.state.user_store = UserStore(_settings.database_url)
    app.state.otp_registry = OTPRegistry(ttl_seconds=_settings.otp_ttl_seconds)
    app.state.mailer = SmtpMailer.from_settings(_settings)
    if not _settings.smtp_host:
        logger.warning("SMTP_HOST not set -- verification and reset emails will not be delivered")
    app.state.flows = build_flows(app.state.user_store, app.state.otp_registry, app.state.mailer)
    logger.info("Credential core initialized")
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.user_store.close()
    logger.info("Grievance auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Grievance Portal Auth API",
    description="Registration, login, email verification and password reset for the Grievance Portal.",
    version=_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[_settings.client_url],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves the API as {"error": {code, message, detail?}}.
# ---------------------------------------------------------------------------


def _error_response(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    envelope = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=envelope.model_dump(), headers=headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 for login and OTP brute-force attempts past the per-IP limit."""
    logger.warning("Rate limit hit on %s from %s", request.url.path, get_remote_address(request))
    return _error_response(
        429,
        "rate_limited",
        "Too many attempts, please try again later",
        detail=str(exc.detail),
        headers={"Retry-After": str(int(getattr(exc, "retry_after", 60)))},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 when a body or path parameter fails its Pydantic constraints."""
    return _error_response(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Pass route failures through unchanged.

    Credential routes raise with a {code, message} dict detail and sometimes
    a Cache-Control header; both are kept as-is.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 for anything unexpected; the traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "Something went wrong, please try again")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit -- load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database round-trip check."""
    components = {"app": "ok"}
    try:
        with request.app.state.user_store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        components["database"] = "ok"
    except Exception:
        logger.exception("Health check database probe failed")
        components["database"] = "error"
    components["otp_registry"] = f"{len(request.app.state.otp_registry)} pending"
    return HealthResponse(version=_VERSION, components=components)
