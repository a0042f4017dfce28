from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from eventhub.core.timeutils import utcnow
from eventhub.models import Event, User
from eventhub.models.event import EventStatus
from eventhub.models.notification import NotificationPriority, NotificationType
from eventhub.services import email_service
from eventhub.services.effects import BroadcastEventUpdate, CreateNotification, Effect
from eventhub.services.error_codes import ErrorCode
from eventhub.services.events_service import paginate
from eventhub.services.exceptions import ConflictError, NotFoundError
from eventhub.services.transitions import ModerationAction, next_event_status

logger = structlog.get_logger()


def _locked_event(db: Session, event_id: Any) -> Event:
    event = db.scalar(select(Event).where(Event.id == event_id).with_for_update())
    if not event:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")
    return event


def _moderate(
    db: Session, admin: User, event_id: Any, action: ModerationAction, reason: str | None = None
) -> Event:
    event = _locked_event(db, event_id)
    try:
        event.status = next_event_status(event.status, action)
    except ConflictError:
        db.rollback()
        raise
    event.reviewed_by_id = admin.id
    event.reviewed_at = utcnow()
    if action == ModerationAction.REJECT:
        event.rejection_reason = reason
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info(
        "event_approved" if action == ModerationAction.APPROVE else "event_rejected",
        event_id=str(event.id),
        admin_id=str(admin.id),
    )
    return event


def approve_event(db: Session, admin: User, event_id: Any) -> tuple[Event, list[Effect]]:
    event = _moderate(db, admin, event_id, ModerationAction.APPROVE)
    effects: list[Effect] = [
        CreateNotification(
            recipient_id=event.created_by_id,
            sender_id=admin.id,
            type=NotificationType.EVENT_APPROVED,
            title="Event approved",
            message=f'Your event "{event.title}" has been approved and is now public',
            priority=NotificationPriority.NORMAL,
            data={
                "event_id": str(event.id),
                "event_title": event.title,
                "action_url": f"/events/{event.id}",
            },
        ),
        BroadcastEventUpdate(event.id, "event_approved", {"event_id": str(event.id)}),
    ]
    if event.creator is not None:
        effects.append(email_service.event_approved_email(event.creator.email, event.title))
    return event, effects


def reject_event(db: Session, admin: User, event_id: Any, reason: str) -> tuple[Event, list[Effect]]:
    event = _moderate(db, admin, event_id, ModerationAction.REJECT, reason=reason)
    effects: list[Effect] = [
        CreateNotification(
            recipient_id=event.created_by_id,
            sender_id=admin.id,
            type=NotificationType.EVENT_REJECTED,
            title="Event rejected",
            message=f'Your event "{event.title}" has been rejected: {reason}',
            priority=NotificationPriority.HIGH,
            data={
                "event_id": str(event.id),
                "event_title": event.title,
                "action_url": f"/events/{event.id}",
                "metadata": {"rejection_reason": reason},
            },
        ),
        BroadcastEventUpdate(event.id, "event_rejected", {"event_id": str(event.id)}),
    ]
    if event.creator is not None:
        effects.append(email_service.event_rejected_email(event.creator.email, event.title, reason))
    return event, effects


def list_pending(db: Session, page: int, limit: int) -> tuple[list[Event], int]:
    stmt = select(Event).where(Event.status == EventStatus.PENDING)
    return paginate(db, stmt, [Event.created_at.desc(), Event.id], page, limit)
