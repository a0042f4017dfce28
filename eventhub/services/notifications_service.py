from __future__ import annotations

from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from eventhub.core.timeutils import utcnow
from eventhub.models import Notification, User
from eventhub.models.notification import NotificationType
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import NotFoundError

logger = structlog.get_logger()


def list_notifications(
    db: Session,
    user: User,
    page: int,
    limit: int,
    unread_only: bool = False,
    type_: NotificationType | None = None,
) -> tuple[list[Notification], int]:
    stmt = select(Notification).where(Notification.recipient_id == user.id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    if type_ is not None:
        stmt = stmt.where(Notification.type == type_)

    total = int(db.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
    rows = db.scalars(
        stmt.order_by(Notification.created_at.desc(), Notification.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(rows), total


def unread_count(db: Session, user_id: Any) -> int:
    return int(
        db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.recipient_id == user_id, Notification.is_read.is_(False))
        )
        or 0
    )


def _owned(db: Session, user_id: Any, notification_id: Any) -> Notification:
    notification = db.scalar(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.recipient_id == user_id,
        )
    )
    if not notification:
        raise NotFoundError(ErrorCode.NOTIFICATION_NOT_FOUND.value, "notification not found")
    return notification


def mark_read(db: Session, user_id: Any, notification_id: Any) -> Notification:
    notification = _owned(db, user_id, notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.add(notification)
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: Any) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.recipient_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=utcnow())
    )
    db.commit()
    return result.rowcount or 0


def delete_notification(db: Session, user_id: Any, notification_id: Any) -> None:
    notification = _owned(db, user_id, notification_id)
    db.delete(notification)
    db.commit()


def cleanup_old_notifications(db: Session, days_old: int = 30) -> int:
    """Delete read notifications older than ``days_old`` days."""
    cutoff = utcnow() - timedelta(days=days_old)
    result = db.execute(
        delete(Notification).where(
            Notification.is_read.is_(True),
            Notification.created_at < cutoff,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    deleted = result.rowcount or 0
    logger.info("notifications_cleaned_up", deleted=deleted, days_old=days_old)
    return deleted
