"""
tests/test_auth_routes.py -- Integration tests for the /api/auth routes.

These tests exercise the full stack: FastAPI routing -> dependency injection
-> AuthService -> UserStore -> response model serialization -> the error
envelope rendered by api/main.py.

Coverage:
  - Signup: 201, field errors as 400, duplicate as 409, throttled as 429
  - Login: bearer token on success, one 401 body for every bad credential,
    429 with Retry-After on the sixth attempt
  - Logout and validate, including the never-failing validate contract
  - Forgot / reset password without revealing account existence
  - Profile read and partial update
  - Malformed JSON bodies return 400, not 422
  - Unknown paths (404) and wrong methods (405) use the same error envelope

Fixtures used (from conftest.py):
  - client: TestClient with an isolated store and service behind app.state
  - clock: FakeClock shared by the service, its managers and its limiter
  - notifier: RecordingNotifier that captures issued reset tokens
"""

from fastapi.testclient import TestClient

PASSWORD = "Secure123!"
NEW_PASSWORD = "Brand-New456?"

SIGNUP_BODY = {
    "username": "validuser",
    "email": "test@example.com",
    "password": PASSWORD,
    "first_name": "Test",
    "last_name": "User",
}


def _signup(client: TestClient, **overrides):
    return client.post("/api/auth/signup", json={**SIGNUP_BODY, **overrides})


def _login(client: TestClient, username: str = "validuser", password: str = PASSWORD, **extra):
    return client.post("/api/auth/login", json={"username": username, "password": password, **extra})


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _signed_in(client: TestClient) -> str:
    assert _signup(client).status_code == 201
    resp = _login(client)
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


class TestSignup:
    def test_created(self, client: TestClient) -> None:
        resp = _signup(client)
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["user_id"]
        assert data["username"] == "validuser"
        assert data["email"] == "test@example.com"
        assert data["message"] == "User created successfully"
        assert "password" not in data
        assert "password_hash" not in data

    def test_short_username_is_400(self, client: TestClient) -> None:
        resp = client.post("/api/auth/signup", json={"username": "ab"})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "invalid_input"
        assert "username" in error["message"]

    def test_bad_email_is_400(self, client: TestClient) -> None:
        resp = _signup(client, email="bad")
        assert resp.status_code == 400
        assert "email" in resp.json()["error"]["message"]

    def test_weak_password_is_400(self, client: TestClient) -> None:
        resp = _signup(client, password="password")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "weak_password"

    def test_duplicate_username_is_409(self, client: TestClient) -> None:
        assert _signup(client).status_code == 201
        resp = _signup(client, email="other@example.com")
        assert resp.status_code == 409
        assert resp.json()["error"]["message"] == "Username already exists"

    def test_script_in_name_is_stored_escaped(self, client: TestClient) -> None:
        _signup(client, first_name="<script>alert(1)</script>")
        token = _login(client).json()["token"]
        profile = client.get("/api/auth/profile", headers=_auth(token)).json()
        assert "<" not in profile["first_name"]
        assert profile["first_name"].startswith("&lt;script&gt;")

    def test_fourth_signup_in_an_hour_is_429(self, client: TestClient) -> None:
        for i in range(3):
            resp = _signup(client, username=f"user{i}", email=f"user{i}@example.com")
            assert resp.status_code == 201
        resp = _signup(client, username="user3", email="user3@example.com")
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "rate_limited"
        assert resp.headers["Retry-After"] == "3600"


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_success(self, client: TestClient) -> None:
        user_id = _signup(client).json()["user_id"]
        resp = _login(client)
        assert resp.status_code == 200, resp.text
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()
        assert data["token"]
        assert data["token_type"] == "bearer"
        assert data["user_id"] == user_id
        assert data["username"] == "validuser"
        assert data["expires_at"].startswith("2026-01-02T12:00:00")

    def test_remember_me_extends_expiry(self, client: TestClient) -> None:
        _signup(client)
        data = _login(client, remember_me=True).json()
        assert data["expires_at"].startswith("2026-01-31T12:00:00")

    def test_wrong_password_and_unknown_user_match(self, client: TestClient) -> None:
        _signup(client)
        wrong_password = _login(client, password="Wrong123!")
        unknown_user = _login(client, username="nobody")
        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json()
        assert wrong_password.json()["error"]["message"] == "Invalid credentials"

    def test_sixth_attempt_is_429_with_retry_after(self, client: TestClient, clock) -> None:
        _signup(client)
        for _ in range(5):
            assert _login(client, password="Wrong123!").status_code == 401
        resp = _login(client)
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "60"

        clock.advance(seconds=60)
        assert _login(client).status_code == 200

    def test_malformed_json_is_400(self, client: TestClient) -> None:
        resp = client.post(
            "/api/auth/login",
            content="{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_request"

    def test_wrong_field_type_is_400(self, client: TestClient) -> None:
        resp = client.post("/api/auth/login", json={"username": ["validuser"], "password": PASSWORD})
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Logout / validate
# ---------------------------------------------------------------------------


class TestLogoutAndValidate:
    def test_validate_live_token(self, client: TestClient) -> None:
        token = _signed_in(client)
        resp = client.get("/api/auth/validate", headers=_auth(token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is True
        assert data["user_id"]

    def test_validate_accepts_raw_token_header(self, client: TestClient) -> None:
        token = _signed_in(client)
        resp = client.get("/api/auth/validate", headers={"Authorization": token})
        assert resp.json()["valid"] is True

    def test_validate_is_always_200(self, client: TestClient) -> None:
        for headers in ({}, {"Authorization": ""}, {"Authorization": "Bearer bogus"}):
            resp = client.get("/api/auth/validate", headers=headers)
            assert resp.status_code == 200
            assert resp.json() == {"valid": False}

    def test_validate_expired_token(self, client: TestClient, clock) -> None:
        token = _signed_in(client)
        clock.advance(hours=24)
        assert client.get("/api/auth/validate", headers=_auth(token)).json() == {"valid": False}

    def test_logout(self, client: TestClient) -> None:
        token = _signed_in(client)
        resp = client.post("/api/auth/logout", headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out successfully"
        assert client.get("/api/auth/validate", headers=_auth(token)).json()["valid"] is False
        assert client.post("/api/auth/logout", headers=_auth(token)).status_code == 401

    def test_logout_without_token_is_401(self, client: TestClient) -> None:
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class TestPasswordReset:
    def test_unknown_email_is_200_and_issues_nothing(self, client: TestClient, notifier, store) -> None:
        user_id = _signup(client).json()["user_id"]
        resp = client.post("/api/auth/forgot-password", json={"email": "unknown@example.com"})
        assert resp.status_code == 200
        assert resp.json()["message"] == "If the email exists, a password reset link has been sent"
        assert notifier.sent == []
        assert not store.has_reset_tokens(user_id)

    def test_known_and_unknown_email_responses_match(self, client: TestClient) -> None:
        _signup(client)
        known = client.post("/api/auth/forgot-password", json={"email": "test@example.com"})
        unknown = client.post("/api/auth/forgot-password", json={"email": "unknown@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    def test_full_reset_flow(self, client: TestClient, notifier) -> None:
        session = _signed_in(client)
        client.post("/api/auth/forgot-password", json={"email": "test@example.com"})

        resp = client.post(
            "/api/auth/reset-password",
            json={"token": notifier.last_token, "password": NEW_PASSWORD},
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Password reset successful"

        assert client.get("/api/auth/validate", headers=_auth(session)).json()["valid"] is False
        assert _login(client).status_code == 401
        assert _login(client, password=NEW_PASSWORD).status_code == 200

        reuse = client.post(
            "/api/auth/reset-password",
            json={"token": notifier.last_token, "password": "Another789#"},
        )
        assert reuse.status_code == 400

    def test_expired_reset_token_is_400_and_sessions_survive(self, client: TestClient, notifier, clock) -> None:
        session = _signed_in(client)
        client.post("/api/auth/forgot-password", json={"email": "test@example.com"})
        clock.advance(minutes=61)

        resp = client.post(
            "/api/auth/reset-password",
            json={"token": notifier.last_token, "password": NEW_PASSWORD},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Invalid or expired reset token."
        assert client.get("/api/auth/validate", headers=_auth(session)).json()["valid"] is True

    def test_bogus_reset_token_is_400(self, client: TestClient) -> None:
        resp = client.post("/api/auth/reset-password", json={"token": "bogus", "password": NEW_PASSWORD})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Invalid or expired reset token."


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class TestProfile:
    def test_get_profile(self, client: TestClient) -> None:
        token = _signed_in(client)
        resp = client.get("/api/auth/profile", headers=_auth(token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["username"] == "validuser"
        assert data["email"] == "test@example.com"
        assert data["first_name"] == "Test"
        assert data["last_name"] == "User"
        assert data["created_at"]
        assert "password_hash" not in data

    def test_profile_requires_session(self, client: TestClient) -> None:
        assert client.get("/api/auth/profile").status_code == 401
        assert client.put("/api/auth/profile", json={"first_name": "X"}).status_code == 401

    def test_partial_update(self, client: TestClient) -> None:
        token = _signed_in(client)
        resp = client.put("/api/auth/profile", json={"first_name": "Renamed"}, headers=_auth(token))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["first_name"] == "Renamed"
        assert data["last_name"] == "User"
        assert data["email"] == "test@example.com"

    def test_update_to_taken_email_is_409(self, client: TestClient) -> None:
        _signup(client, username="otheruser", email="other@example.com")
        token = _signed_in(client)
        resp = client.put("/api/auth/profile", json={"email": "other@example.com"}, headers=_auth(token))
        assert resp.status_code == 409

    def test_empty_update_is_400(self, client: TestClient) -> None:
        token = _signed_in(client)
        resp = client.put("/api/auth/profile", json={}, headers=_auth(token))
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Routing errors
# ---------------------------------------------------------------------------


class TestRoutingErrors:
    def test_unknown_path_uses_error_envelope(self, client: TestClient) -> None:
        resp = client.get("/api/auth/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": {"code": "http_404", "message": "Not Found", "detail": None}}

    def test_wrong_method_uses_error_envelope(self, client: TestClient) -> None:
        resp = client.delete("/api/auth/validate")
        assert resp.status_code == 405
        assert resp.json()["error"]["code"] == "http_405"
        assert "GET" in resp.headers["Allow"]
