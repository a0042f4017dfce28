from __future__ import annotations

from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy import select, update

from eventhub.auth.jwt import create_access_token, create_refresh_token
from eventhub.core.timeutils import utcnow
from eventhub.models import User, UserRole
from tests.helpers import auth_headers, login, register


def test_register_then_login_returns_distinct_tokens(client: TestClient):
    resp = register(client, "Alice@Example.com", name="Alice")
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["user"]["email"] == "alice@example.com"
    assert body["data"]["user"]["role"] == "user"
    assert "password_hash" not in body["data"]["user"]

    resp2 = login(client, "alice@example.com")
    assert resp2.status_code == 200
    data = resp2.json()["data"]
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["access_token"] != data["refresh_token"]


def test_register_duplicate_email_is_rejected(client: TestClient):
    register(client, "dup@example.com")
    resp = register(client, "DUP@example.com")
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "EMAIL_ALREADY_REGISTERED"


def test_register_rejects_weak_password(client: TestClient):
    resp = register(client, "weak@example.com", password="alllowercase1")
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert any(err["field"] == "password" for err in body["errors"])


def test_wrong_password_is_unauthorized_without_tokens(client: TestClient):
    register(client, "bob@example.com")
    resp = login(client, "bob@example.com", password="Wrong1234")
    assert resp.status_code == 401
    body = resp.json()
    assert body["success"] is False
    assert "data" not in body


def test_login_unknown_email_is_unauthorized(client: TestClient):
    resp = login(client, "ghost@example.com")
    assert resp.status_code == 401


def test_blocked_user_cannot_login(client: TestClient, make_user):
    make_user("blocked@example.com", is_blocked=True)
    resp = login(client, "blocked@example.com")
    assert resp.status_code == 403
    assert resp.json()["code"] == "USER_BLOCKED"


def test_login_records_last_login(client: TestClient, make_user, db_session):
    user = make_user("seen@example.com")
    assert login(client, "seen@example.com").status_code == 200
    db_session.expire_all()
    assert db_session.get(User, user.id).last_login_at is not None


def test_refresh_issues_new_pair(client: TestClient, make_user):
    user = make_user("refresh@example.com")
    resp = client.post(
        "/api/v1/auth/refresh", json={"refresh_token": create_refresh_token(user.id)}
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["access_token"]


def test_refresh_rejects_access_token(client: TestClient, make_user):
    user = make_user("mixup@example.com")
    resp = client.post(
        "/api/v1/auth/refresh", json={"refresh_token": create_access_token(user.id)}
    )
    assert resp.status_code == 401


def test_refresh_requires_token(client: TestClient):
    resp = client.post("/api/v1/auth/refresh", json={})
    assert resp.status_code == 401


def test_me_requires_bearer_token(client: TestClient):
    resp = client.get("/api/v1/auth/me")
    assert resp.status_code == 401
    assert resp.headers.get("www-authenticate") == "Bearer"
    assert resp.json()["success"] is False


def test_me_rejects_garbage_token(client: TestClient):
    resp = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_me_returns_profile(client: TestClient, make_user):
    user = make_user("me@example.com", name="Me Myself")
    resp = client.get("/api/v1/auth/me", headers=auth_headers(user))
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["name"] == "Me Myself"


def test_blocked_user_token_is_forbidden(client: TestClient, make_user, db_session):
    user = make_user("later-blocked@example.com")
    headers = auth_headers(user)
    db_session.execute(update(User).where(User.id == user.id).values(is_blocked=True))
    db_session.commit()

    resp = client.get("/api/v1/auth/me", headers=headers)
    assert resp.status_code == 403


def test_update_profile_and_change_password(client: TestClient, make_user):
    user = make_user("profile@example.com")
    headers = auth_headers(user)

    resp = client.put("/api/v1/auth/profile", json={"name": "New Name"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["name"] == "New Name"

    bad = client.put(
        "/api/v1/auth/change-password",
        json={"current_password": "Nope12345", "new_password": "Another123"},
        headers=headers,
    )
    assert bad.status_code == 400
    assert bad.json()["code"] == "WRONG_PASSWORD"

    good = client.put(
        "/api/v1/auth/change-password",
        json={"current_password": "Secret123", "new_password": "Another123"},
        headers=headers,
    )
    assert good.status_code == 200
    assert login(client, "profile@example.com", password="Another123").status_code == 200


def test_forgot_and_reset_password(client: TestClient, make_user):
    make_user("forgot@example.com")

    resp = client.post("/api/v1/auth/forgot-password", json={"email": "forgot@example.com"})
    assert resp.status_code == 200
    token = resp.json()["data"]["reset_token"]

    reset = client.post(
        "/api/v1/auth/reset-password", json={"token": token, "password": "Brandnew123"}
    )
    assert reset.status_code == 200
    assert login(client, "forgot@example.com", password="Brandnew123").status_code == 200

    reused = client.post(
        "/api/v1/auth/reset-password", json={"token": token, "password": "Brandnew456"}
    )
    assert reused.status_code == 400


def test_forgot_password_does_not_reveal_unknown_email(client: TestClient):
    resp = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@example.com"})
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert "data" not in resp.json()


def test_expired_reset_token_is_rejected(client: TestClient, make_user, db_session):
    user = make_user("expired@example.com")
    db_session.execute(
        update(User)
        .where(User.id == user.id)
        .values(reset_password_token="abc", reset_password_expires=utcnow() - timedelta(minutes=1))
    )
    db_session.commit()

    resp = client.post(
        "/api/v1/auth/reset-password", json={"token": "abc", "password": "Brandnew123"}
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_RESET_TOKEN"


def test_verify_email(client: TestClient, db_session):
    register(client, "verify@example.com")
    user = db_session.scalar(select(User).where(User.email == "verify@example.com"))
    assert user.is_verified is False

    resp = client.post("/api/v1/auth/verify-email", json={"token": user.verification_token})
    assert resp.status_code == 200
    assert resp.json()["data"]["is_verified"] is True

    again = client.post("/api/v1/auth/verify-email", json={"token": user.verification_token})
    assert again.status_code == 400


def test_admin_routes_require_admin_role(client: TestClient, make_user):
    user = make_user("plain@example.com")
    admin = make_user("root@example.com", role=UserRole.ADMIN)

    assert client.get("/api/v1/admin/stats", headers=auth_headers(user)).status_code == 403
    resp = client.get("/api/v1/admin/stats", headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["data"]["total_users"] == 2


def test_logout_acknowledges(client: TestClient, make_user):
    user = make_user("bye@example.com")
    resp = client.post("/api/v1/auth/logout", headers=auth_headers(user))
    assert resp.status_code == 200
    assert resp.json()["success"] is True
