from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from eventhub.db import get_db
from eventhub.models import User, UserRole
from eventhub.realtime import RealtimeRelay
from eventhub.services import auth_service
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import PermissionDeniedError, UnauthorizedError

DBSession = Annotated[Session, Depends(get_db)]


def _unauthorized(code: str, detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.removeprefix("Bearer ").strip() or None


def get_current_user(request: Request, db: DBSession) -> User:
    token = _bearer_token(request)
    try:
        return auth_service.authenticate_token(db, token)
    except UnauthorizedError as exc:
        raise _unauthorized(exc.code, exc.message) from exc
    except PermissionDeniedError as exc:
        raise HTTPException(
            status_code=403, detail={"code": exc.code, "message": exc.message}
        ) from exc


def get_optional_user(request: Request, db: DBSession) -> User | None:
    """Like get_current_user, but anonymous or invalid credentials yield None."""
    token = _bearer_token(request)
    if token is None:
        return None
    try:
        return auth_service.authenticate_token(db, token)
    except (UnauthorizedError, PermissionDeniedError):
        return None


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[User | None, Depends(get_optional_user)]


def require_role(role: UserRole):
    def _dep(user: CurrentUser) -> User:
        if user.role != role:
            raise HTTPException(
                status_code=403,
                detail={"code": ErrorCode.FORBIDDEN.value, "message": "insufficient role"},
            )
        return user

    return _dep


AdminUser = Annotated[User, Depends(require_role(UserRole.ADMIN))]


def get_relay(request: Request) -> RealtimeRelay:
    return request.app.state.relay


Relay = Annotated[RealtimeRelay, Depends(get_relay)]
