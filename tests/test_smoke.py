import pytest

from app.truinventory.db import session_scope
from app.truinventory.models import AuditLog

from conftest import login


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_api_requires_session(client):
    for path in ("/api/items", "/api/categories", "/api/locations", "/api/dashboard", "/api/audit-logs"):
        r = client.get(path)
        assert r.status_code == 401, path
        assert r.json["error"] == "Unauthorized"


def test_unknown_route_is_json_404(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert "error" in r.json


def test_login_session_and_logout(client, seeded_app):
    r = client.post("/api/auth/login", json={"email": "ADMIN@example.com ", "password": "password123"})
    assert r.status_code == 200
    body = r.json
    assert body["user"]["email"] == "admin@example.com"
    assert body["user"]["roleName"] == "Administrator"
    assert body["permissions"] == ["read", "edit", "admin"]
    assert body["csrfToken"]

    r = client.get("/api/auth/session")
    assert r.status_code == 200
    assert r.json["user"]["role"] == "ADMIN"

    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    assert client.get("/api/auth/session").status_code == 401

    with session_scope(seeded_app) as s:
        actions = [a.action for a in s.query(AuditLog).order_by(AuditLog.created_at.asc()).all()]
    assert actions == ["LOGIN", "LOGOUT"]


def test_login_failure_is_audited(client, seeded_app):
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "wrong-password"})
    assert r.status_code == 401

    with session_scope(seeded_app) as s:
        log = s.query(AuditLog).one()
        assert log.action == "LOGIN_FAILED"
        assert log.user_id is None
        assert log.user_email == "admin@example.com"
        assert log.details["method"] == "credentials"


def test_login_rate_limited(client):
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "nope-nope"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "password123"})
    assert r.status_code == 429


def test_csrf_required_for_session_writes(client):
    login(client)
    r = client.post("/api/categories", json={"name": "Tools"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]


def test_csrf_token_accepted_in_json_body(client):
    headers = login(client)
    r = client.post("/api/categories", json={"name": "Tools", "csrf_token": headers["X-CSRF-Token"]})
    assert r.status_code == 201


def test_providers_lists_azure_only_when_configured(client):
    r = client.get("/api/auth/providers")
    assert [p["id"] for p in r.json] == ["credentials"]

    headers = login(client)
    r = client.post(
        "/api/settings",
        json={"azureClientId": "cid", "azureTenantId": "tid", "azureClientSecret": "secret"},
        headers=headers,
    )
    assert r.status_code == 200

    r = client.get("/api/auth/providers")
    assert [p["id"] for p in r.json] == ["credentials", "azure-ad"]


def test_setup_flow(app):
    client = app.test_client()
    r = client.get("/api/setup")
    assert r.json == {"setupRequired": True}

    r = client.post("/api/setup", json={"email": "owner@example.com", "password": "password123"})
    assert r.status_code == 400
    assert r.json["error"] == "Missing required fields"

    r = client.post("/api/setup", json={"email": "Owner@Example.com", "password": "password123", "name": "Owner"})
    assert r.status_code == 201
    assert r.json["user"]["role"] == "ADMIN"
    assert r.json["user"]["email"] == "owner@example.com"

    assert client.get("/api/setup").json == {"setupRequired": False}

    r = client.post("/api/setup", json={"email": "second@example.com", "password": "password123", "name": "Second"})
    assert r.status_code == 400
    assert r.json["error"] == "Setup has already been completed"

    login(client, "owner@example.com")
    assert client.get("/api/users").status_code == 200


def test_production_requires_strong_secret(monkeypatch, tmp_path):
    from app.truinventory import create_app

    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost/db")
    monkeypatch.setenv("SECRET_KEY", "change-me")
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app()
