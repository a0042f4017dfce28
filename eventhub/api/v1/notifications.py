from __future__ import annotations

import uuid

from fastapi import APIRouter, Query

from eventhub.api.v1.responses import ok
from eventhub.api.v1.schemas.common import build_pagination
from eventhub.api.v1.schemas.notifications import NotificationOut
from eventhub.auth.deps import CurrentUser, DBSession
from eventhub.models.notification import NotificationType
from eventhub.services import notifications_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    user: CurrentUser,
    db: DBSession,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    unread_only: bool = False,
    type_: NotificationType | None = Query(default=None, alias="type"),
):
    rows, total = notifications_service.list_notifications(db, user, page, limit, unread_only, type_)
    return ok(
        {
            "notifications": [NotificationOut.model_validate(n) for n in rows],
            "pagination": build_pagination(page, limit, total),
            "unread_count": notifications_service.unread_count(db, user.id),
        }
    )


@router.get("/unread-count")
def unread_count(user: CurrentUser, db: DBSession):
    return ok({"count": notifications_service.unread_count(db, user.id)})


@router.put("/mark-all-read")
def mark_all_read(user: CurrentUser, db: DBSession):
    updated = notifications_service.mark_all_read(db, user.id)
    return ok({"updated": updated}, "all notifications marked as read")


@router.put("/{notification_id}/read")
def mark_read(notification_id: uuid.UUID, user: CurrentUser, db: DBSession):
    notification = notifications_service.mark_read(db, user.id, notification_id)
    return ok({"notification": NotificationOut.model_validate(notification)})


@router.delete("/{notification_id}")
def delete_notification(notification_id: uuid.UUID, user: CurrentUser, db: DBSession):
    notifications_service.delete_notification(db, user.id, notification_id)
    return ok(message="notification deleted")
