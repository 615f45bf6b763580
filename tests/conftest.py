import pytest
from werkzeug.security import generate_password_hash

from app.truinventory import create_app
from app.truinventory.db import session_scope
from app.truinventory.models import Base, User

PASSWORD = "password123"

USERS = {
    "admin@example.com": ("Admin", "ADMIN"),
    "editor@example.com": ("Editor", "EDITOR"),
    "viewer@example.com": ("Viewer", "READ_ONLY"),
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("LOW_STOCK_THRESHOLD", "ITEMS_PAGE_SIZE", "ITEMS_MAX_PAGE_SIZE", "QR_BASE_URL"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def seeded_app(app):
    with session_scope(app) as s:
        for email, (name, role) in USERS.items():
            s.add(User(email=email, name=name, role=role, password_hash=generate_password_hash(PASSWORD), is_active=True))
    return app


@pytest.fixture()
def client(seeded_app):
    return seeded_app.test_client()


def login(client, email="admin@example.com", password=PASSWORD) -> dict:
    """Sign in and return headers carrying the session's CSRF token."""
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.get_json()
    return {"X-CSRF-Token": r.get_json()["csrfToken"]}


def user_id(app, email: str) -> str:
    with session_scope(app) as s:
        return s.query(User).filter(User.email == email).one().id
