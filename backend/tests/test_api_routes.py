import pyotp
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedauth.config import settings
from feedauth.core.database import Base, enable_sqlite_foreign_keys, get_db
from feedauth.main import app
from feedauth.models.account import Account
from feedauth.services.auth_gate import auth_gate
from feedauth.services.rate_limiter import InMemoryRateLimiter

PASSWORD = "Secur3Pass!1"


@pytest.fixture
def client(monkeypatch):
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(auth_gate, "limiter", InMemoryRateLimiter())
    app.dependency_overrides[get_db] = override_get_db
    try:
        test_client = TestClient(app)
        test_client.session_factory = SessionLocal
        yield test_client
    finally:
        app.dependency_overrides.pop(get_db, None)


def _register(client, email="a@x.com"):
    response = client.post(
        "/api/v1/auth/register",
        json={"name": "Alice", "email": email, "password": PASSWORD, "device_info": "Laptop"},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _auth(data):
    return {"Authorization": f"Bearer {data['auth']['access_token']}"}


def test_register_rejects_weak_password(client):
    response = client.post(
        "/api/v1/auth/register",
        json={"name": "Alice", "email": "a@x.com", "password": "weakpass"},
    )
    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"


def test_me_requires_bearer_token(client):
    response = client.get("/api/v1/auth/me")
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    body = response.json()
    assert body["success"] is False
    assert body["path"] == "/api/v1/auth/me"


def test_register_then_me_and_logout(client):
    data = _register(client)
    assert data["session"]["device_info"] == "Laptop"

    me = client.get("/api/v1/auth/me", headers=_auth(data))
    assert me.status_code == 200
    assert me.json()["data"]["user"]["email"] == "a@x.com"
    assert "X-Token-Refresh-Needed" not in me.headers

    logout = client.post(
        "/api/v1/auth/logout",
        headers=_auth(data),
        json={"refresh_token": data["auth"]["refresh_token"]},
    )
    assert logout.status_code == 200
    assert client.get("/api/v1/auth/me", headers=_auth(data)).status_code == 401

    refresh = client.post("/api/v1/auth/refresh", json={"refresh_token": data["auth"]["refresh_token"]})
    assert refresh.status_code == 401


def test_duplicate_registration_conflicts(client):
    _register(client)
    response = client.post(
        "/api/v1/auth/register",
        json={"name": "Alice", "email": "A@x.com", "password": PASSWORD},
    )
    assert response.status_code == 409


def test_login_with_two_factor_requires_code(client):
    data = _register(client)
    setup = client.get("/api/v1/auth/2fa/setup", headers=_auth(data)).json()["data"]
    secret = setup["secret"]
    enabled = client.post(
        "/api/v1/auth/2fa/enable",
        headers=_auth(data),
        json={"secret": secret, "token": pyotp.TOTP(secret).now()},
    )
    assert enabled.status_code == 200
    assert len(enabled.json()["data"]["backup_codes"]) == 10

    pending = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": PASSWORD})
    assert pending.status_code == 200
    assert pending.json()["requires_2fa"] is True
    assert "auth" not in pending.json()["data"]

    done = client.post(
        "/api/v1/auth/login",
        json={"email": "a@x.com", "password": PASSWORD, "twofa_token": pyotp.TOTP(secret).now()},
    )
    assert done.status_code == 200
    assert done.json()["data"]["auth"]["access_token"]

    status = client.get("/api/v1/auth/2fa/status", headers=_auth(data)).json()["data"]
    assert status == {"twofa_enabled": True, "backup_codes_remaining": 10}


def test_sessions_listing_and_termination(client):
    first = _register(client)
    second = client.post(
        "/api/v1/auth/login",
        json={"email": "a@x.com", "password": PASSWORD, "device_info": "Phone"},
    ).json()["data"]

    listed = client.get("/api/v1/sessions/", headers=_auth(first)).json()["data"]["sessions"]
    assert len(listed) == 2
    current = [s for s in listed if s["is_current"]]
    assert [s["id"] for s in current] == [first["session"]["id"]]
    assert all("session_token" not in s for s in listed)

    own = client.delete(f"/api/v1/sessions/{first['session']['id']}", headers=_auth(first))
    assert own.status_code == 400

    ended = client.delete(f"/api/v1/sessions/{second['session']['id']}", headers=_auth(first))
    assert ended.status_code == 200
    assert client.get("/api/v1/auth/me", headers=_auth(second)).status_code == 401
    assert client.get("/api/v1/auth/me", headers=_auth(first)).status_code == 200

    missing = client.delete("/api/v1/sessions/9999", headers=_auth(first))
    assert missing.status_code == 404


def test_admin_only_token_routes(client):
    data = _register(client)
    assert client.get("/api/v1/tokens/blacklist/stats", headers=_auth(data)).status_code == 403

    db = client.session_factory()
    try:
        account = db.query(Account).filter(Account.email == "a@x.com").one()
        account.role = "admin"
        db.commit()
    finally:
        db.close()

    stats = client.get("/api/v1/tokens/blacklist/stats", headers=_auth(data))
    assert stats.status_code == 200
    assert stats.json()["data"] == {"total": 0, "active": 0, "expired": 0}


def test_revoke_all_ends_every_session(client):
    first = _register(client)
    second = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": PASSWORD}).json()["data"]

    response = client.post("/api/v1/tokens/revoke/all", headers=_auth(first))
    assert response.status_code == 200
    assert response.json()["data"]["revoked_count"] == 2
    for data in (first, second):
        assert client.get("/api/v1/auth/me", headers=_auth(data)).status_code == 401


def test_forgot_password_is_rate_limited_with_retry_after(client):
    for _ in range(3):
        response = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@x.com"})
        assert response.status_code == 200

    limited = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@x.com"})
    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) > 0
    assert limited.json()["details"]["retry_after"] > 0


def test_token_info_and_verify(client):
    data = _register(client)
    info = client.get("/api/v1/tokens/info", headers=_auth(data)).json()["data"]
    assert info["session_id"] == data["session"]["id"]
    assert info["token_payload"]["aud"] == "rssfeeder-users"

    verified = client.get("/api/v1/auth/verify-token", headers=_auth(data)).json()["data"]
    assert verified["valid"] is True
    assert verified["token_info"]["should_refresh"] is False


def test_responses_use_the_api_envelope(client):
    data = _register(client)
    me = client.get("/api/v1/auth/me", headers=_auth(data)).json()
    assert me["success"] is True
    assert me["timestamp"]

    login = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": PASSWORD}).json()
    assert login["requires_2fa"] is False
    assert login["data"]["auth"]["token_type"] == "Bearer"

    error = client.get("/api/v1/auth/me").json()
    assert error["error"] == "Invalid or expired credentials"
    assert error["timestamp"]


def test_login_budget_is_separate_from_register_and_reset(client):
    for _ in range(10):
        response = client.post("/api/v1/auth/login", json={"email": "nobody@x.com", "password": PASSWORD})
        assert response.status_code == 401
    limited = client.post("/api/v1/auth/login", json={"email": "nobody@x.com", "password": PASSWORD})
    assert limited.status_code == 429

    _register(client)
    reset = client.post("/api/v1/auth/reset-password", json={"token": "bogus", "new_password": PASSWORD})
    assert reset.status_code == 422
