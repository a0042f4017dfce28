from __future__ import annotations

import secrets
from datetime import timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventhub.auth.jwt import (
    create_token_pair,
    user_id_from_claims,
    verify_access_token,
    verify_refresh_token,
)
from eventhub.auth.password import hash_password, verify_password
from eventhub.core.timeutils import ensure_aware, utcnow
from eventhub.models import User
from eventhub.services import email_service
from eventhub.services.effects import Effect
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    UnauthorizedError,
    ValidationError,
)

logger = structlog.get_logger()

RESET_TOKEN_TTL = timedelta(hours=1)
VERIFICATION_TOKEN_TTL = timedelta(hours=24)


def _new_token() -> str:
    return secrets.token_hex(32)


def _user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == email.strip().lower()))


def _ensure_not_blocked(user: User) -> None:
    if user.is_blocked:
        raise PermissionDeniedError(ErrorCode.USER_BLOCKED.value, "account is blocked")


def register(
    db: Session, email: str, password: str, name: str
) -> tuple[tuple[User, dict[str, str]], list[Effect]]:
    email = email.strip().lower()
    if _user_by_email(db, email):
        raise ConflictError(ErrorCode.EMAIL_ALREADY_REGISTERED.value, "email already registered")

    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name.strip(),
        verification_token=_new_token(),
        verification_expires=utcnow() + VERIFICATION_TOKEN_TTL,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(
            ErrorCode.EMAIL_ALREADY_REGISTERED.value, "email already registered"
        ) from exc
    db.refresh(user)

    logger.info("user_registered", user_id=str(user.id))
    effects: list[Effect] = [email_service.welcome_email(user.email, user.name, user.verification_token)]
    return (user, create_token_pair(user.id)), effects


def login(db: Session, email: str, password: str) -> tuple[User, dict[str, str]]:
    user = _user_by_email(db, email)
    if not user:
        raise UnauthorizedError(ErrorCode.INVALID_CREDENTIALS.value, "invalid credentials")
    _ensure_not_blocked(user)
    if not verify_password(password, user.password_hash):
        raise UnauthorizedError(ErrorCode.INVALID_CREDENTIALS.value, "invalid credentials")

    user.last_login_at = utcnow()
    db.add(user)
    db.commit()
    logger.info("user_logged_in", user_id=str(user.id))
    return user, create_token_pair(user.id)


def refresh(db: Session, refresh_token: str | None) -> dict[str, str]:
    if not refresh_token:
        raise UnauthorizedError(ErrorCode.INVALID_TOKEN.value, "refresh token required")
    try:
        user_id = user_id_from_claims(verify_refresh_token(refresh_token))
    except ValueError as exc:
        raise UnauthorizedError(ErrorCode.INVALID_TOKEN.value, "invalid or expired token") from exc

    user = db.get(User, user_id)
    if not user or user.is_blocked:
        raise UnauthorizedError(ErrorCode.INVALID_TOKEN.value, "invalid or expired token")
    return create_token_pair(user.id)


def authenticate_token(db: Session, token: str | None) -> User:
    """Resolve an access token to its user; shared by HTTP and socket auth."""
    if not token:
        raise UnauthorizedError(ErrorCode.INVALID_TOKEN.value, "missing bearer token")
    try:
        user_id = user_id_from_claims(verify_access_token(token))
    except ValueError as exc:
        raise UnauthorizedError(ErrorCode.INVALID_TOKEN.value, "invalid or expired token") from exc

    user = db.get(User, user_id)
    if not user:
        raise UnauthorizedError(ErrorCode.USER_NOT_FOUND.value, "user no longer exists")
    _ensure_not_blocked(user)
    return user


def forgot_password(db: Session, email: str) -> tuple[str | None, list[Effect]]:
    """Returns the reset token for known users; callers must not reveal it outside development."""
    user = _user_by_email(db, email)
    if not user:
        return None, []

    token = _new_token()
    user.reset_password_token = token
    user.reset_password_expires = utcnow() + RESET_TOKEN_TTL
    db.add(user)
    db.commit()
    logger.info("password_reset_requested", user_id=str(user.id))
    return token, [email_service.password_reset_email(user.email, token)]


def reset_password(db: Session, token: str, new_password: str) -> User:
    user = db.scalar(select(User).where(User.reset_password_token == token))
    if (
        not user
        or user.reset_password_expires is None
        or ensure_aware(user.reset_password_expires) <= utcnow()
    ):
        raise ValidationError(ErrorCode.INVALID_RESET_TOKEN.value, "invalid or expired token")

    user.password_hash = hash_password(new_password)
    user.reset_password_token = None
    user.reset_password_expires = None
    db.add(user)
    db.commit()
    logger.info("password_reset", user_id=str(user.id))
    return user


def verify_email(db: Session, token: str) -> User:
    user = db.scalar(select(User).where(User.verification_token == token))
    if (
        not user
        or user.verification_expires is None
        or ensure_aware(user.verification_expires) <= utcnow()
    ):
        raise ValidationError(
            ErrorCode.INVALID_VERIFICATION_TOKEN.value, "invalid or expired verification token"
        )

    user.is_verified = True
    user.verification_token = None
    user.verification_expires = None
    db.add(user)
    db.commit()
    return user


def update_profile(db: Session, user: User, name: str | None, avatar_url: str | None) -> User:
    if name is not None:
        user.name = name.strip()
    if avatar_url is not None:
        user.avatar_url = avatar_url or None
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError(ErrorCode.WRONG_PASSWORD.value, "current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.add(user)
    db.commit()
    logger.info("password_changed", user_id=str(user.id))


def get_user(db: Session, user_id) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError(ErrorCode.USER_NOT_FOUND.value, "user not found")
    return user
