from __future__ import annotations

import uuid

from fastapi import APIRouter, Query

from eventhub.api.v1.events import event_list_data
from eventhub.api.v1.responses import ok
from eventhub.api.v1.schemas.admin import BlockUserIn, RejectEventIn, ReportOut, ReviewReportIn
from eventhub.api.v1.schemas.auth import UserOut
from eventhub.api.v1.schemas.common import build_pagination
from eventhub.api.v1.schemas.events import EventOut
from eventhub.auth.deps import AdminUser, DBSession, Relay
from eventhub.models import UserRole
from eventhub.models.event import EventStatus
from eventhub.models.event_report import ReportStatus
from eventhub.services import (
    EffectExecutor,
    admin_service,
    events_service,
    moderation_service,
    reports_service,
)
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import ValidationError

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/dashboard")
def dashboard(admin: AdminUser, db: DBSession):
    return ok(admin_service.dashboard(db))


@router.get("/stats")
def quick_stats(admin: AdminUser, db: DBSession):
    return ok(admin_service.quick_stats(db))


@router.get("/events")
def list_events(
    admin: AdminUser,
    db: DBSession,
    status: EventStatus | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    events, total = events_service.list_all_events(db, status, search, page, limit)
    return ok(event_list_data(db, events, page, limit, total))


@router.get("/events/pending")
def pending_events(
    admin: AdminUser,
    db: DBSession,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    events, total = moderation_service.list_pending(db, page, limit)
    return ok(event_list_data(db, events, page, limit, total))


@router.put("/events/{event_id}/approve")
def approve_event(event_id: uuid.UUID, admin: AdminUser, db: DBSession, relay: Relay):
    event, effects = moderation_service.approve_event(db, admin, event_id)
    EffectExecutor(db, relay).apply(effects)
    out = EventOut.from_event(event, active_count=events_service.active_participant_count(db, event.id))
    return ok({"event": out}, "event approved")


@router.put("/events/{event_id}/reject")
def reject_event(
    event_id: uuid.UUID, payload: RejectEventIn, admin: AdminUser, db: DBSession, relay: Relay
):
    event, effects = moderation_service.reject_event(db, admin, event_id, payload.reason)
    EffectExecutor(db, relay).apply(effects)
    out = EventOut.from_event(event, active_count=events_service.active_participant_count(db, event.id))
    return ok({"event": out}, "event rejected")


@router.get("/reports")
def list_reports(
    admin: AdminUser,
    db: DBSession,
    status: str = "pending",
    event_id: uuid.UUID | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    try:
        status_filter = None if status == "all" else ReportStatus(status)
    except ValueError:
        raise ValidationError(ErrorCode.VALIDATION_ERROR.value, f"unknown report status: {status}") from None
    reports, total = reports_service.list_reports(db, status_filter, event_id, page, limit)
    return ok(
        {
            "reports": [ReportOut.model_validate(r) for r in reports],
            "pagination": build_pagination(page, limit, total),
        }
    )


@router.post("/reports/{report_id}/review")
def review_report(
    report_id: uuid.UUID, payload: ReviewReportIn, admin: AdminUser, db: DBSession, relay: Relay
):
    report, effects = reports_service.review_report(
        db, admin, report_id, payload.status, payload.admin_notes, payload.action_taken
    )
    EffectExecutor(db, relay).apply(effects)
    return ok({"report": ReportOut.model_validate(report)}, "report reviewed")


@router.get("/users")
def list_users(
    admin: AdminUser,
    db: DBSession,
    search: str | None = None,
    role: UserRole | None = None,
    is_blocked: bool | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    users, total = admin_service.list_users(db, page, limit, search, role, is_blocked)
    return ok(
        {
            "users": [UserOut.model_validate(u) for u in users],
            "pagination": build_pagination(page, limit, total),
        }
    )


@router.put("/users/{user_id}/toggle-role")
def toggle_role(user_id: uuid.UUID, admin: AdminUser, db: DBSession):
    user = admin_service.toggle_role(db, admin, user_id)
    return ok({"user": UserOut.model_validate(user)}, f"role changed to {user.role.value}")


@router.post("/users/{user_id}/block")
def block_user(
    user_id: uuid.UUID, admin: AdminUser, db: DBSession, relay: Relay, payload: BlockUserIn | None = None
):
    user, effects = admin_service.block_user(db, admin, user_id, payload.reason if payload else None)
    EffectExecutor(db, relay).apply(effects)
    return ok({"user": UserOut.model_validate(user)}, "user blocked")


@router.post("/users/{user_id}/unblock")
def unblock_user(user_id: uuid.UUID, admin: AdminUser, db: DBSession, relay: Relay):
    user, effects = admin_service.unblock_user(db, admin, user_id)
    EffectExecutor(db, relay).apply(effects)
    return ok({"user": UserOut.model_validate(user)}, "user unblocked")
