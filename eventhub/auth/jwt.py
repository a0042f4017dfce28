from __future__ import annotations

import uuid
from datetime import timedelta

import jwt
from jwt import PyJWTError

from eventhub.core.config import settings
from eventhub.core.timeutils import utcnow


def _encode(user_id: uuid.UUID | str, secret: str, ttl_seconds: int) -> str:
    now = utcnow()
    exp = now + timedelta(seconds=ttl_seconds)
    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def _decode(token: str, secret: str) -> dict:
    payload = jwt.decode(
        token,
        secret,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp"]},
    )
    return payload


def create_access_token(user_id: uuid.UUID | str, ttl_seconds: int | None = None) -> str:
    return _encode(user_id, settings.jwt_secret, ttl_seconds or settings.access_token_ttl_seconds)


def create_refresh_token(user_id: uuid.UUID | str, ttl_seconds: int | None = None) -> str:
    return _encode(
        user_id,
        settings.jwt_refresh_secret,
        ttl_seconds or settings.refresh_token_ttl_seconds,
    )


def create_token_pair(user_id: uuid.UUID | str) -> dict[str, str]:
    return {
        "access_token": create_access_token(user_id),
        "refresh_token": create_refresh_token(user_id),
    }


def verify_access_token(token: str) -> dict:
    try:
        return _decode(token, settings.jwt_secret)
    except PyJWTError as exc:
        raise ValueError("invalid access token") from exc


def verify_refresh_token(token: str) -> dict:
    try:
        return _decode(token, settings.jwt_refresh_secret)
    except PyJWTError as exc:
        raise ValueError("invalid refresh token") from exc


def user_id_from_claims(claims: dict) -> uuid.UUID:
    try:
        return uuid.UUID(str(claims.get("sub")))
    except ValueError as exc:
        raise ValueError("invalid subject claim") from exc
