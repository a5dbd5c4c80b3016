"""
auth/dependencies.py -- Session resolution for protected routes.

A session token may arrive two ways, tried in this order:
  1. the "access_token" cookie written by register/login/reset responses
  2. an "Authorization: Bearer <token>" header (mobile and API clients)

A cookie that no longer decodes (expired, signed with a rotated key) does
not shadow a valid Bearer header on the same request.

The token only proves who the caller was when it was issued. The account is
re-read from the store on every request, so deactivation takes effect
immediately even though tokens are never revoked.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.tokens import decode_access_token

_BEARER_PREFIX = "Bearer "


def _request_tokens(request: Request) -> list[str]:
    tokens = []
    cookie = request.cookies.get("access_token")
    if cookie:
        tokens.append(cookie)
    header = request.headers.get("Authorization", "")
    if header.startswith(_BEARER_PREFIX):
        bearer = header[len(_BEARER_PREFIX) :].strip()
        if bearer:
            tokens.append(bearer)
    return tokens


def try_get_current_user(request: Request) -> User | None:
    """Resolve the caller to an active User, or None. Never raises."""
    for token in _request_tokens(request):
        claims = decode_access_token(token)
        if claims is None:
            continue
        user = request.app.state.user_store.get_by_id(claims["user_id"])
        if user is None or not user.is_active:
            return None
        return user
    return None


def get_current_user(request: Request) -> User:
    """Dependency for routes that need a signed-in, active account (401 otherwise)."""
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Not authorized, please log in"},
        )
    return user
