"""Tests for the session endpoints and the authentication gate"""
import base64
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from shop_auth.config import Settings, settings
from shop_auth.main import create_app, main
from shop_auth.middleware.rate_limit import RATE_LIMITS, get_rate_limit, limiter
from shop_auth.utils.errors import ConfigInvalid, StoreUnavailable
from tests.conftest import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    T0,
    USER_EMAIL,
    USER_PASSWORD,
    TestingSessionLocal,
    bearer,
)

API = "/api/v1/auth"


def _login(client: TestClient, email: str = USER_EMAIL, password: str = USER_PASSWORD) -> dict:
    response = client.post(f"{API}/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

def test_login_success(client, user):
    """Test that valid credentials return a token pair in the envelope"""
    response = client.post(f"{API}/login", json={"email": USER_EMAIL, "password": USER_PASSWORD})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Login Successful"
    assert body["data"]["id"] == user.id
    assert body["data"]["token_type"] == "bearer"
    assert body["data"]["expires_in"] == 3600
    assert body["data"]["token"] != body["data"]["refresh_token"]


@pytest.mark.parametrize(
    "email, password",
    [(USER_EMAIL, "wrong-password"), ("nobody@b.com", USER_PASSWORD)],
)
def test_login_bad_credentials(client, user, email, password):
    """Test that unknown users and wrong passwords get the same 401"""
    response = client.post(f"{API}/login", json={"email": email, "password": password})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"
    assert response.headers["www-authenticate"] == "Bearer"


def test_login_validation_error(client):
    """Test that a missing field is reported per field"""
    response = client.post(f"{API}/login", json={"password": "x"})

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert any(err["field"] == "email" for err in body["errors"])


# ---------------------------------------------------------------------------
# Authentication gate
# ---------------------------------------------------------------------------

def test_token_valid_until_expiry(client, clock, user):
    """Test that a token works within its lifetime and is rejected after it"""
    token = _login(client)["token"]

    clock.advance(10)
    response = client.get(f"{API}/me", headers=bearer(token))
    assert response.status_code == 200
    assert response.json()["data"]["email"] == USER_EMAIL
    assert response.json()["data"]["roles"] == ["ROLE_USER"]
    assert response.json()["data"]["expiring_soon"] is False

    clock.now = T0 + 3600.001
    response = client.get(f"{API}/me", headers=bearer(token))
    assert response.status_code == 401
    body = response.json()
    assert body["message"] == "Invalid or expired token"
    assert body["error"] == "Unauthorized"
    assert body["status"] == 401
    assert body["path"] == f"{API}/me"
    assert response.headers["www-authenticate"] == "Bearer"


def test_tampered_token_is_rejected(client, user):
    """Test that a forged token is rejected by the gate"""
    header, payload, signature = _login(client)["token"].split(".")
    swapped = "A" if signature[0] != "A" else "B"

    response = client.get(f"{API}/me", headers=bearer(".".join([header, payload, swapped + signature[1:]])))

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


def test_non_bearer_header_is_anonymous(client):
    """Test that Basic credentials pass public routes and fail protected ones"""
    assert client.get("/health", headers={"Authorization": "Basic xyz"}).status_code == 200

    response = client.get(f"{API}/me", headers={"Authorization": "Basic xyz"})
    assert response.status_code == 401
    assert response.json()["message"] == "Authentication required"


def test_invalid_bearer_rejected_even_on_public_route(client):
    """Test that a bad bearer token is never silently downgraded to anonymous"""
    response = client.get("/health", headers=bearer("garbage"))

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


def test_refresh_token_is_not_a_bearer_credential(client, user):
    """Test that the refresh token cannot be used to call the API"""
    refresh_token = _login(client)["refresh_token"]

    response = client.get(f"{API}/me", headers=bearer(refresh_token))
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


def test_deleted_user_token_is_rejected(client, db, user):
    """Test that a token outlives its user only until the next request"""
    token = _login(client)["token"]
    db.delete(user)
    db.commit()

    response = client.get(f"{API}/me", headers=bearer(token))
    assert response.status_code == 401
    assert response.json()["message"] == "User not found"


def test_store_outage_fails_closed(client, store, user, monkeypatch):
    """Test that an unreachable blacklist rejects authenticated requests"""
    token = _login(client)["token"]
    monkeypatch.setattr(store, "is_revoked", MagicMock(side_effect=StoreUnavailable("down")))

    response = client.get(f"{API}/me", headers=bearer(token))
    assert response.status_code == 401
    assert response.json()["message"] == "Token has been revoked"


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------

def test_logout_revokes_token(client, clock, user):
    """Test that a logged-out token is rejected for the rest of its lifetime"""
    token = _login(client)["token"]

    clock.advance(100)
    response = client.post(f"{API}/logout", headers=bearer(token))
    assert response.status_code == 200
    assert response.json()["message"] == "Logout Successful"

    clock.advance(100)
    response = client.get(f"{API}/me", headers=bearer(token))
    assert response.status_code == 401
    assert response.json()["message"] == "Token has been revoked"


def test_logout_does_not_affect_other_sessions(client, user):
    """Test that revoking one token leaves a second login usable"""
    first = _login(client)["token"]
    second = _login(client)["token"]

    client.post(f"{API}/logout", headers=bearer(first))

    assert client.get(f"{API}/me", headers=bearer(second)).status_code == 200


def test_logout_with_refresh_token(client, user):
    """Test that the refresh token passed at logout can no longer be exchanged"""
    tokens = _login(client)

    client.post(
        f"{API}/logout",
        headers=bearer(tokens["token"]),
        json={"refresh_token": tokens["refresh_token"]},
    )

    response = client.post(f"{API}/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401
    assert response.json()["message"] == "Token has been revoked"


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Basic xyz"}])
def test_logout_without_bearer_header(client, headers):
    """Test that logout needs a Bearer header"""
    response = client.post(f"{API}/logout", headers=headers)

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Invalid Authorization header"
    assert body["errors"][0]["field"] == "Authorization"


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------

def test_refresh_rotates_pair(client, clock, user):
    """Test that refresh issues a working access token and burns the old refresh token"""
    tokens = _login(client)
    clock.advance(1800)

    response = client.post(f"{API}/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["message"] == "Token refreshed"
    rotated = response.json()["data"]

    me = client.get(f"{API}/me", headers=bearer(rotated["token"]))
    assert me.json()["data"]["expires_at"] == int(T0) + 1800 + 3600

    replay = client.post(f"{API}/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert replay.status_code == 401
    assert replay.json()["message"] == "Token has been revoked"


def test_refresh_with_access_token(client, user):
    """Test that an access token cannot be exchanged"""
    token = _login(client)["token"]

    response = client.post(f"{API}/refresh", json={"refresh_token": token})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

def test_admin_endpoint_requires_role(client, admin):
    """Test that ROLE_ADMIN is enforced on the admin route"""
    user_token = _login(client)["token"]
    admin_token = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)["token"]

    denied = client.get(f"{API}/admin/revocation-store", headers=bearer(user_token))
    assert denied.status_code == 403
    assert denied.json()["message"] == "You do not have permission to access this resource"

    allowed = client.get(f"{API}/admin/revocation-store", headers=bearer(admin_token))
    assert allowed.status_code == 200
    assert allowed.json()["data"] == {"reachable": True}


def test_admin_roles_in_token_order(client, admin):
    """Test that the roles claim keeps the stored order"""
    token = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)["token"]

    response = client.get(f"{API}/me", headers=bearer(token))
    assert response.json()["data"]["roles"] == ["ROLE_USER", "ROLE_ADMIN"]


# ---------------------------------------------------------------------------
# Ambient behaviour
# ---------------------------------------------------------------------------

def test_security_headers_on_success_and_rejection(client):
    """Test that security headers are set on every response"""
    for response in (client.get("/health"), client.get("/health", headers=bearer("garbage"))):
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert "strict-transport-security" not in response.headers


def test_unknown_endpoint(client):
    """Test that unknown paths use the error envelope"""
    response = client.get(f"{API}/nope")

    assert response.status_code == 404
    assert response.json()["message"] == "Endpoint not found"


def test_wrong_method(client):
    """Test that an unsupported method names the method"""
    response = client.get(f"{API}/login")

    assert response.status_code == 405
    assert response.json()["message"] == "Method 'GET' is not supported for this endpoint"


def test_readiness(client, store, monkeypatch):
    """Test that readiness reflects the revocation store"""
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["checks"]["revocation_store"] is True

    monkeypatch.setattr(store, "ping", lambda: False)
    response = client.get("/health/ready")
    assert response.status_code == 503
    assert response.json()["message"] == "Revocation store unreachable"


def test_weak_secret_aborts_startup(db):
    """Test that a 128-bit key stops the application from starting"""
    weak = Settings(JWT_SECRET=base64.b64encode(b"k" * 16).decode())
    app = create_app(app_settings=weak, session_factory=TestingSessionLocal)

    with pytest.raises(ConfigInvalid, match="256 bits"):
        with TestClient(app):
            pass


def test_docs_served_outside_production(client):
    """Test that interactive docs are available by default"""
    assert client.get("/docs").status_code == 200
    assert client.get("/").json()["docs"] == "/docs"


def test_docs_hidden_in_production(db, clock, store):
    """Test that a production log level turns off the docs endpoints"""
    production = Settings(LOG_LEVEL="WARNING")
    app = create_app(app_settings=production, clock=clock, revocation_store=store, session_factory=TestingSessionLocal)

    with TestClient(app) as test_client:
        assert test_client.get("/docs").status_code == 404
        assert test_client.get("/redoc").status_code == 404
        assert test_client.get("/").json()["docs"] is None


def test_main_runs_uvicorn_on_configured_address():
    """Test that the entry point binds to HOST and PORT"""
    with patch("shop_auth.main.uvicorn.run") as run:
        main()

    run.assert_called_once_with(
        "shop_auth.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=not settings.is_production,
    )


def test_every_configured_rate_limit_is_applied():
    """Test that each per-endpoint limit decorates a route of the same name"""
    limited = {name.rsplit(".", 1)[-1] for name in limiter._route_limits if name.startswith("shop_auth.api.")}

    assert limited == set(RATE_LIMITS)
    assert get_rate_limit("login") == settings.RATE_LIMIT_LOGIN
    assert get_rate_limit("health") == settings.RATE_LIMIT_DEFAULT[0]
