"""
tests/test_api_auth.py -- Integration tests for /api/v1/auth/* routes.

These run through the real ASGI stack (middleware, rate limiter, exception
handlers) with the api_client fixture. Codes and reset links that would have
been emailed are read back from the fake mailer on the fixture state.

Each test registers its own user (distinct email/phone) because the
module-scoped client shares one database across the module. Cookies are
cleared before every test so a session cookie from an earlier test never
authenticates a later request.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient


@pytest.fixture(autouse=True)
def _clear_cookies(api_client):
    client, _state = api_client
    client.cookies.clear()
    yield
    client.cookies.clear()


def _register(client: TestClient, n: int, password: str = "secret1") -> dict:
    resp = client.post(
        "/api/v1/auth/register",
        json={"name": f"User {n}", "email": f"user{n}@x.com", "phone": f"90000000{n:02d}", "password": password},
    )
    assert resp.status_code == 201, resp.text
    client.cookies.clear()
    return resp.json()


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestRegisterAndLogin:
    def test_register_returns_token_and_public_profile(self, api_client) -> None:
        client, state = api_client
        resp = client.post(
            "/api/v1/auth/register",
            json={"name": "Asha", "email": "asha@x.com", "phone": "9999999999", "password": "secret1"},
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["access_token"]
        assert data["token_type"] == "bearer"
        assert data["user"]["email"] == "asha@x.com"
        assert data["user"]["is_verified"] is False
        assert "hashed_password" not in data["user"]
        assert "password" not in resp.text
        assert resp.headers["cache-control"] == "no-store"
        assert state.mailer.last_otp("asha@x.com")

    def test_duplicate_registration_is_409(self, api_client) -> None:
        client, _state = api_client
        _register(client, 1)
        resp = client.post(
            "/api/v1/auth/register",
            json={"name": "Dup", "email": "user1@x.com", "phone": "8888888888", "password": "secret1"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_invalid_phone_is_422(self, api_client) -> None:
        client, _state = api_client
        resp = client.post(
            "/api/v1/auth/register",
            json={"name": "Bad", "email": "bad@x.com", "phone": "123", "password": "secret1"},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_login_by_phone(self, api_client) -> None:
        client, _state = api_client
        _register(client, 2)
        resp = client.post("/api/v1/auth/login", json={"email_or_phone": "9000000002", "password": "secret1"})
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == "user2@x.com"
        assert resp.headers["cache-control"] == "no-store"

    def test_wrong_password_is_401_with_no_store(self, api_client) -> None:
        client, _state = api_client
        _register(client, 3)
        resp = client.post("/api/v1/auth/login", json={"email_or_phone": "user3@x.com", "password": "nope123"})
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Invalid credentials"
        assert resp.headers["cache-control"] == "no-store"

    def test_deactivated_account_is_403(self, api_client) -> None:
        client, state = api_client
        uid = _register(client, 4)["user"]["id"]
        state.store.update_user(uid, is_active=False)
        resp = client.post("/api/v1/auth/login", json={"email_or_phone": "user4@x.com", "password": "secret1"})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "authorization_failed"


class TestVerification:
    def test_me_requires_auth(self, api_client) -> None:
        client, _state = api_client
        assert client.get("/api/v1/auth/me").status_code == 401
        assert client.get("/api/v1/auth/me", headers=_bearer("garbage")).status_code == 401

    def test_stale_cookie_falls_back_to_bearer(self, api_client) -> None:
        client, _state = api_client
        token = _register(client, 11)["access_token"]
        client.cookies.set("access_token", "expired.or.forged")
        resp = client.get("/api/v1/auth/me", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json()["email"] == "user11@x.com"

    def test_verify_otp_then_resend_is_rejected(self, api_client) -> None:
        client, state = api_client
        token = _register(client, 5)["access_token"]
        code = state.mailer.last_otp("user5@x.com")

        resp = client.post("/api/v1/auth/verify-otp", json={"otp": code}, headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Email verified successfully"

        me = client.get("/api/v1/auth/me", headers=_bearer(token)).json()
        assert me["is_verified"] is True
        assert "hashed_password" not in me

        resp = client.post("/api/v1/auth/resend-otp", headers=_bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Email is already verified"

    def test_reused_code_is_rejected(self, api_client) -> None:
        client, state = api_client
        token = _register(client, 6)["access_token"]
        resp = client.post("/api/v1/auth/resend-otp", headers=_bearer(token))
        assert resp.status_code == 200
        code = state.mailer.last_otp("user6@x.com")
        assert client.post("/api/v1/auth/verify-otp", json={"otp": code}, headers=_bearer(token)).status_code == 200
        resp = client.post("/api/v1/auth/verify-otp", json={"otp": code}, headers=_bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "not_found_or_expired"


class TestPasswordReset:
    def test_forgot_and_reset_password(self, api_client) -> None:
        client, state = api_client
        _register(client, 7)
        resp = client.post("/api/v1/auth/forgot-password", json={"email": "user7@x.com"})
        assert resp.status_code == 200
        reset_token = state.mailer.last_reset_token("user7@x.com")

        resp = client.put(f"/api/v1/auth/reset-password/{reset_token}", json={"password": "brandnew1"})
        assert resp.status_code == 200
        assert resp.json()["access_token"]
        client.cookies.clear()

        replay = client.put(f"/api/v1/auth/reset-password/{reset_token}", json={"password": "again1234"})
        assert replay.status_code == 400
        assert replay.json()["error"]["message"] == "Invalid or expired reset token"

        login = client.post("/api/v1/auth/login", json={"email_or_phone": "user7@x.com", "password": "brandnew1"})
        assert login.status_code == 200

    def test_forgot_password_unknown_email_is_404(self, api_client) -> None:
        client, _state = api_client
        resp = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@x.com"})
        assert resp.status_code == 404

    def test_reset_on_deactivated_account_is_403(self, api_client) -> None:
        client, state = api_client
        uid = _register(client, 12)["user"]["id"]
        client.post("/api/v1/auth/forgot-password", json={"email": "user12@x.com"})
        reset_token = state.mailer.last_reset_token("user12@x.com")
        state.store.update_user(uid, is_active=False)

        resp = client.put(f"/api/v1/auth/reset-password/{reset_token}", json={"password": "brandnew1"})
        assert resp.status_code == 403
        assert "set-cookie" not in resp.headers
        assert resp.headers["cache-control"] == "no-store"

    def test_bogus_reset_token_is_400(self, api_client) -> None:
        client, _state = api_client
        resp = client.put("/api/v1/auth/reset-password/" + "0" * 40, json={"password": "brandnew1"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "not_found_or_expired"


class TestAccount:
    def test_update_password(self, api_client) -> None:
        client, _state = api_client
        token = _register(client, 8)["access_token"]
        wrong = client.put(
            "/api/v1/auth/update-password",
            json={"current_password": "nope123", "new_password": "brandnew1"},
            headers=_bearer(token),
        )
        assert wrong.status_code == 401

        ok = client.put(
            "/api/v1/auth/update-password",
            json={"current_password": "secret1", "new_password": "brandnew1"},
            headers=_bearer(token),
        )
        assert ok.status_code == 200
        assert ok.json()["access_token"]

    def test_update_profile(self, api_client) -> None:
        client, _state = api_client
        token = _register(client, 9)["access_token"]
        resp = client.put(
            "/api/v1/auth/update-profile",
            json={"name": "Renamed", "location": "Ward 7"},
            headers=_bearer(token),
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["name"] == "Renamed"
        assert resp.json()["user"]["location"] == "Ward 7"

    def test_logout_requires_session(self, api_client) -> None:
        client, _state = api_client
        assert client.post("/api/v1/auth/logout").status_code == 401

    def test_logout_clears_cookie(self, api_client) -> None:
        client, _state = api_client
        token = _register(client, 10)["access_token"]
        resp = client.post("/api/v1/auth/logout", headers=_bearer(token))
        assert resp.status_code == 200
        set_cookie = resp.headers.get("set-cookie", "")
        assert "access_token" in set_cookie
        assert "max-age=0" in set_cookie.lower() or "expires=" in set_cookie.lower()
