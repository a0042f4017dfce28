from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventhub.core.timeutils import ensure_aware, utcnow
from eventhub.models import Event, EventParticipant, User
from eventhub.models.event import EventStatus
from eventhub.models.event_participant import ParticipantStatus
from eventhub.models.message import SystemAction
from eventhub.models.notification import NotificationPriority, NotificationType
from eventhub.services.effects import (
    AdjustUserCounter,
    BroadcastEventUpdate,
    CreateNotification,
    Effect,
    PostSystemMessage,
)
from eventhub.services.error_codes import ErrorCode
from eventhub.services.events_service import active_participant_count
from eventhub.services.exceptions import ConflictError, NotFoundError, PermissionDeniedError

logger = structlog.get_logger()


def _lock_event(db: Session, event_id: Any) -> Event:
    # FOR UPDATE keeps the capacity check and the roster write consistent (no-op on SQLite)
    event = db.scalar(select(Event).where(Event.id == event_id).with_for_update())
    if not event:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")
    return event


def _roster_row(db: Session, event_id: Any, user_id: Any) -> EventParticipant | None:
    return db.scalar(
        select(EventParticipant).where(
            EventParticipant.event_id == event_id,
            EventParticipant.user_id == user_id,
        )
    )


def _event_data(event: Event) -> dict[str, str]:
    return {
        "event_id": str(event.id),
        "event_title": event.title,
        "action_url": f"/events/{event.id}",
    }


def join_event(db: Session, user: User, event_id: Any) -> tuple[int, list[Effect]]:
    """Join an approved, not-yet-started event; returns the new active count."""
    try:
        event = _lock_event(db, event_id)

        if event.status != EventStatus.APPROVED:
            raise PermissionDeniedError(
                ErrorCode.EVENT_NOT_APPROVED.value, "cannot join an event that is not approved"
            )
        if ensure_aware(event.starts_at) <= utcnow():
            raise ConflictError(ErrorCode.EVENT_ALREADY_STARTED.value, "event has already started")
        if event.created_by_id == user.id:
            raise ConflictError(ErrorCode.CREATOR_CANNOT_JOIN.value, "cannot join your own event")

        existing = _roster_row(db, event.id, user.id)
        if existing and existing.status == ParticipantStatus.CONFIRMED:
            raise ConflictError(ErrorCode.ALREADY_PARTICIPANT.value, "already joined this event")

        count = active_participant_count(db, event.id)
        if count >= event.capacity:
            raise ConflictError(ErrorCode.EVENT_FULL.value, "event is full")

        now = utcnow()
        if existing:
            existing.status = ParticipantStatus.CONFIRMED
            existing.joined_at = now
            existing.cancelled_at = None
            db.add(existing)
        else:
            db.add(
                EventParticipant(
                    event_id=event.id,
                    user_id=user.id,
                    status=ParticipantStatus.CONFIRMED,
                    joined_at=now,
                )
            )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(ErrorCode.ALREADY_PARTICIPANT.value, "already joined this event") from exc
    except Exception:
        db.rollback()
        raise

    new_count = count + 1
    logger.info("event_joined", event_id=str(event.id), user_id=str(user.id), count=new_count)

    effects: list[Effect] = [
        CreateNotification(
            recipient_id=event.created_by_id,
            sender_id=user.id,
            type=NotificationType.USER_JOINED_EVENT,
            title="New registration for your event",
            message=f'{user.name} joined your event "{event.title}"',
            data=_event_data(event),
        ),
        PostSystemMessage(event.id, user.id, SystemAction.USER_JOINED),
        AdjustUserCounter(user.id, "events_attended", 1),
        BroadcastEventUpdate(
            event.id,
            "participant_joined",
            {"user_id": str(user.id), "active_participants_count": new_count},
        ),
    ]
    return new_count, effects


def leave_event(db: Session, user: User, event_id: Any) -> tuple[int, list[Effect]]:
    try:
        event = _lock_event(db, event_id)

        participant = _roster_row(db, event.id, user.id)
        if not participant or participant.status != ParticipantStatus.CONFIRMED:
            raise ConflictError(ErrorCode.NOT_PARTICIPANT.value, "not registered for this event")

        participant.status = ParticipantStatus.CANCELLED
        participant.cancelled_at = utcnow()
        db.add(participant)
        db.commit()
    except Exception:
        db.rollback()
        raise

    new_count = active_participant_count(db, event.id)
    logger.info("event_left", event_id=str(event.id), user_id=str(user.id), count=new_count)

    effects: list[Effect] = [
        CreateNotification(
            recipient_id=event.created_by_id,
            sender_id=user.id,
            type=NotificationType.USER_LEFT_EVENT,
            title="Registration cancelled",
            message=f'{user.name} cancelled their registration to "{event.title}"',
            priority=NotificationPriority.LOW,
            data=_event_data(event),
        ),
        PostSystemMessage(event.id, user.id, SystemAction.USER_LEFT),
        AdjustUserCounter(user.id, "events_attended", -1),
        BroadcastEventUpdate(
            event.id,
            "participant_left",
            {"user_id": str(user.id), "active_participants_count": new_count},
        ),
    ]
    return new_count, effects
