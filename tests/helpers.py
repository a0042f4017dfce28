from __future__ import annotations

from fastapi.testclient import TestClient

from eventhub.auth.jwt import create_access_token
from eventhub.models import User

PASSWORD = "Secret123"


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def register(client: TestClient, email: str, password: str = PASSWORD, name: str = "Test User"):
    return client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "name": name},
    )


def login(client: TestClient, email: str, password: str = PASSWORD):
    return client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
