from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from plots.api import create_app
from plots.auth import AuthService
from plots.config import Settings
from plots.database import Database


def test_health_reports_service_identity(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["database"] == "connected"
    assert payload["service"]
    assert payload["version"]


def test_responses_carry_security_headers(client: TestClient) -> None:
    response = client.get("/health")
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"


def test_login_with_seeded_admin_succeeds(client: TestClient) -> None:
    response = client.post("/auth/login", json={"username": "admin", "password": "admin123"})

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["success"] is True
    assert payload["token"]
    assert payload["user"]["username"] == "admin"
    assert payload["user"]["email"] == "admin@plots.com"
    assert "password_hash" not in payload["user"]


def test_login_with_wrong_password_is_unauthorized(client: TestClient) -> None:
    response = client.post("/auth/login", json={"username": "admin", "password": "wrong"})

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Invalid credentials"}


def test_login_with_malformed_body_is_bad_request(client: TestClient) -> None:
    missing = client.post("/auth/login", json={"username": "admin"})
    assert missing.status_code == 400
    assert missing.json()["message"] == "Validation error"
    assert any("password" in detail for detail in missing.json()["details"])

    extra = client.post("/auth/login", json={"username": "admin", "password": "admin123", "role": "root"})
    assert extra.status_code == 400


def test_verify_requires_token(client: TestClient) -> None:
    response = client.get("/auth/verify")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_verify_rejects_invalid_token(client: TestClient) -> None:
    response = client.get("/auth/verify", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401


def test_verify_returns_identity_claims(client: TestClient, auth_headers) -> None:
    response = client.get("/auth/verify", headers=auth_headers)

    assert response.status_code == 200, response.text
    user = response.json()["user"]
    assert user["username"] == "admin"
    assert user["id"]
    assert user["issued_at"]
    assert user["expires_at"]


def test_expired_token_is_rejected(settings: Settings, database: Database) -> None:
    issued = datetime.now(timezone.utc) - timedelta(hours=25)
    minting = AuthService(database, secret=settings.jwt_secret, clock=lambda: issued)
    token = minting.login("admin", "admin123").token

    with TestClient(create_app(settings=settings, database=database)) as client:
        response = client.get("/auth/verify", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Token expired"


def test_routes_are_also_served_under_api_prefix(client: TestClient) -> None:
    response = client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200
    assert client.get("/api/plots").status_code == 200


def test_unknown_route_uses_error_envelope(client: TestClient) -> None:
    response = client.get("/does-not-exist")
    assert response.status_code == 404
    assert response.json()["success"] is False
