from __future__ import annotations

from fastapi import APIRouter

from eventhub.api.v1.responses import ok
from eventhub.api.v1.schemas.auth import (
    ChangePasswordIn,
    ForgotPasswordIn,
    LoginIn,
    RefreshIn,
    RegisterIn,
    ResetPasswordIn,
    TokenPair,
    UpdateProfileIn,
    UserOut,
    VerifyEmailIn,
)
from eventhub.auth.deps import CurrentUser, DBSession, Relay
from eventhub.core.config import settings
from eventhub.services import EffectExecutor, auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_data(user, tokens: dict[str, str]) -> dict:
    return {"user": UserOut.model_validate(user), **TokenPair(**tokens).model_dump()}


@router.post("/register", status_code=201)
def register(payload: RegisterIn, db: DBSession, relay: Relay):
    (user, tokens), effects = auth_service.register(db, payload.email, payload.password, payload.name)
    EffectExecutor(db, relay).apply(effects)
    return ok(_auth_data(user, tokens), "registration successful")


@router.post("/login")
def login(payload: LoginIn, db: DBSession):
    user, tokens = auth_service.login(db, payload.email, payload.password)
    return ok(_auth_data(user, tokens), "login successful")


@router.post("/refresh")
def refresh(payload: RefreshIn, db: DBSession):
    tokens = auth_service.refresh(db, payload.refresh_token)
    return ok(TokenPair(**tokens), "token refreshed")


@router.post("/logout")
def logout(user: CurrentUser):
    # Tokens are stateless; clients drop them.
    return ok(message="logout successful")


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordIn, db: DBSession, relay: Relay):
    token, effects = auth_service.forgot_password(db, payload.email)
    EffectExecutor(db, relay).apply(effects)
    data = {"reset_token": token} if token and settings.debug_errors else None
    return ok(data, "if the email exists, a reset link has been sent")


@router.post("/reset-password")
def reset_password(payload: ResetPasswordIn, db: DBSession):
    auth_service.reset_password(db, payload.token, payload.password)
    return ok(message="password reset successful")


@router.post("/verify-email")
def verify_email(payload: VerifyEmailIn, db: DBSession):
    user = auth_service.verify_email(db, payload.token)
    return ok(UserOut.model_validate(user), "email verified")


@router.get("/me")
def me(user: CurrentUser):
    return ok({"user": UserOut.model_validate(user)})


@router.put("/profile")
def update_profile(payload: UpdateProfileIn, user: CurrentUser, db: DBSession):
    user = auth_service.update_profile(db, user, payload.name, payload.avatar_url)
    return ok({"user": UserOut.model_validate(user)}, "profile updated")


@router.put("/change-password")
def change_password(payload: ChangePasswordIn, user: CurrentUser, db: DBSession):
    auth_service.change_password(db, user, payload.current_password, payload.new_password)
    return ok(message="password changed")
