from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from eventhub.core.timeutils import ensure_aware, utcnow
from eventhub.models import Event, EventReport, User, UserRole
from eventhub.models.event import EventStatus
from eventhub.models.event_report import ReportStatus
from eventhub.models.notification import NotificationPriority, NotificationType
from eventhub.services.effects import CreateNotification, Effect
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import ConflictError, NotFoundError, PermissionDeniedError

logger = structlog.get_logger()


def _count(db: Session, model, *criteria) -> int:
    return int(db.scalar(select(func.count()).select_from(model).where(*criteria)) or 0)


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def quick_stats(db: Session) -> dict[str, int]:
    return {
        "total_users": _count(db, User),
        "total_events": _count(db, Event),
        "pending_events": _count(db, Event, Event.status == EventStatus.PENDING),
    }


def dashboard(db: Session) -> dict[str, Any]:
    month_start = _month_start(utcnow())
    stats = {
        **quick_stats(db),
        "total_reports": _count(db, EventReport),
        "pending_reports": _count(db, EventReport, EventReport.status == ReportStatus.PENDING),
        "blocked_users": _count(db, User, User.is_blocked.is_(True)),
        "events_this_month": _count(db, Event, Event.created_at >= month_start),
        "users_this_month": _count(db, User, User.created_at >= month_start),
    }

    by_category = db.execute(
        select(Event.category, func.count())
        .where(Event.status == EventStatus.APPROVED)
        .group_by(Event.category)
        .order_by(func.count().desc())
    ).all()
    most_reported = db.scalars(
        select(Event)
        .where(Event.report_count >= 1)
        .order_by(Event.report_count.desc(), Event.created_at.desc())
        .limit(5)
    ).all()

    return {
        "stats": stats,
        "charts": {
            "events_by_category": [
                {"category": category.value, "count": int(count)} for category, count in by_category
            ],
            "most_reported_events": [
                {
                    "id": str(event.id),
                    "title": event.title,
                    "report_count": event.report_count,
                    "creator": {"id": str(event.created_by_id), "name": event.creator.name},
                    "created_at": ensure_aware(event.created_at).isoformat(),
                }
                for event in most_reported
            ],
        },
    }


def list_users(
    db: Session,
    page: int,
    limit: int,
    search: str | None = None,
    role: UserRole | None = None,
    is_blocked: bool | None = None,
) -> tuple[list[User], int]:
    stmt = select(User)
    if search:
        like = f"%{search.strip().lower()}%"
        stmt = stmt.where(or_(User.email.ilike(like), User.name.ilike(like)))
    if role is not None:
        stmt = stmt.where(User.role == role)
    if is_blocked is not None:
        stmt = stmt.where(User.is_blocked.is_(is_blocked))

    total = int(db.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
    users = db.scalars(
        stmt.order_by(User.created_at.desc(), User.id).offset((page - 1) * limit).limit(limit)
    ).all()
    return list(users), total


def _get_user(db: Session, user_id: Any) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError(ErrorCode.USER_NOT_FOUND.value, "user not found")
    return user


def toggle_role(db: Session, admin: User, user_id: Any) -> User:
    user = _get_user(db, user_id)
    if user.id == admin.id:
        raise ConflictError(ErrorCode.CANNOT_MODIFY_SELF.value, "cannot change your own role")

    user.role = UserRole.USER if user.role == UserRole.ADMIN else UserRole.ADMIN
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user_role_changed", user_id=str(user.id), role=user.role.value, admin_id=str(admin.id))
    return user


def block_user(
    db: Session, admin: User, user_id: Any, reason: str | None = None
) -> tuple[User, list[Effect]]:
    user = _get_user(db, user_id)
    if user.is_admin:
        raise PermissionDeniedError(ErrorCode.FORBIDDEN.value, "cannot block an administrator")

    user.is_blocked = True
    db.add(user)
    db.commit()
    logger.info("user_blocked", user_id=str(user.id), admin_id=str(admin.id))

    suffix = f": {reason}" if reason else ""
    return user, [
        CreateNotification(
            recipient_id=user.id,
            sender_id=admin.id,
            type=NotificationType.USER_BLOCKED,
            title="Account blocked",
            message=f"Your account has been blocked{suffix}",
            priority=NotificationPriority.HIGH,
        )
    ]


def unblock_user(db: Session, admin: User, user_id: Any) -> tuple[User, list[Effect]]:
    user = _get_user(db, user_id)
    user.is_blocked = False
    db.add(user)
    db.commit()
    logger.info("user_unblocked", user_id=str(user.id), admin_id=str(admin.id))

    return user, [
        CreateNotification(
            recipient_id=user.id,
            sender_id=admin.id,
            type=NotificationType.SYSTEM,
            title="Account unblocked",
            message="Your account has been reactivated",
        )
    ]
