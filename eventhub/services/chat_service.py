from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from eventhub.core.timeutils import ensure_aware, utcnow
from eventhub.models import Event, EventParticipant, Message, Notification, User
from eventhub.models.event_participant import ParticipantStatus
from eventhub.models.message import MessageType
from eventhub.models.notification import NotificationType
from eventhub.services.effects import (
    BroadcastToEventChat,
    CreateNotification,
    Effect,
    message_payload,
)
from eventhub.services.error_codes import ErrorCode
from eventhub.services.events_service import get_event, is_confirmed_participant
from eventhub.services.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = structlog.get_logger()

EDIT_WINDOW = timedelta(minutes=15)
DEFAULT_PAGE_SIZE = 50


def can_read_chat(db: Session, user: User, event: Event) -> bool:
    if not event.allow_chat:
        return False
    if user.is_admin or event.created_by_id == user.id:
        return True
    return is_confirmed_participant(db, event.id, user.id)


def _require_read_access(db: Session, user: User, event: Event) -> None:
    if not (
        user.is_admin
        or event.created_by_id == user.id
        or is_confirmed_participant(db, event.id, user.id)
    ):
        raise PermissionDeniedError(
            ErrorCode.CHAT_ACCESS_DENIED.value, "no access to this event chat"
        )
    if not event.allow_chat:
        raise PermissionDeniedError(ErrorCode.CHAT_DISABLED.value, "chat is disabled for this event")


def _require_write_access(db: Session, user: User, event: Event) -> None:
    if not (event.created_by_id == user.id or is_confirmed_participant(db, event.id, user.id)):
        raise PermissionDeniedError(ErrorCode.CHAT_ACCESS_DENIED.value, "cannot write in this chat")
    if not event.allow_chat:
        raise PermissionDeniedError(ErrorCode.CHAT_DISABLED.value, "chat is disabled for this event")
    if user.is_blocked:
        raise PermissionDeniedError(ErrorCode.USER_BLOCKED.value, "account is blocked")


def _get_message(db: Session, message_id: Any) -> Message:
    message = db.get(Message, message_id)
    if not message or message.is_deleted:
        raise NotFoundError(ErrorCode.MESSAGE_NOT_FOUND.value, "message not found")
    return message


def get_messages(
    db: Session,
    user: User,
    event_id: Any,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> tuple[Event, list[Message], int]:
    """Newest-first page, returned oldest-first for display."""
    event = get_event(db, event_id)
    _require_read_access(db, user, event)

    visible = (Message.event_id == event.id, Message.is_deleted.is_(False))
    total = int(db.scalar(select(func.count()).select_from(Message).where(*visible)) or 0)
    messages = db.scalars(
        select(Message)
        .where(*visible)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return event, list(reversed(messages)), total


def relay_effects(
    db: Session, message: Message, is_online: Callable[[uuid.UUID], bool]
) -> list[Effect]:
    """Broadcast a persisted message and notify confirmed participants who are offline.

    Safe to call again for the same message: recipients already notified about
    it are skipped.
    """
    event = db.get(Event, message.event_id)
    if event is None:
        return []

    effects: list[Effect] = [
        BroadcastToEventChat(event.id, "message_received", message_payload(message))
    ]
    author_name = message.author.name if message.author else "Someone"
    participant_ids = db.scalars(
        select(EventParticipant.user_id).where(
            EventParticipant.event_id == event.id,
            EventParticipant.status == ParticipantStatus.CONFIRMED,
        )
    ).all()
    already_notified = set(
        db.scalars(
            select(Notification.recipient_id).where(
                Notification.type == NotificationType.NEW_MESSAGE,
                Notification.data["message_id"].as_string() == str(message.id),
            )
        ).all()
    )
    for participant_id in participant_ids:
        if (
            participant_id == message.user_id
            or participant_id in already_notified
            or is_online(participant_id)
        ):
            continue
        effects.append(
            CreateNotification(
                recipient_id=participant_id,
                sender_id=message.user_id,
                type=NotificationType.NEW_MESSAGE,
                title="New message",
                message=f'{author_name} wrote in the chat of "{event.title}"',
                data={
                    "event_id": str(event.id),
                    "event_title": event.title,
                    "message_id": str(message.id),
                    "message_content": message.content[:100]
                    + ("..." if len(message.content) > 100 else ""),
                    "action_url": f"/events/{event.id}/chat",
                },
            )
        )
    return effects


def send_message(
    db: Session,
    user: User,
    event_id: Any,
    content: str,
    message_type: MessageType = MessageType.TEXT,
    attachment: dict[str, Any] | None = None,
    is_online: Callable[[uuid.UUID], bool] | None = None,
) -> tuple[Message, list[Effect]]:
    event = get_event(db, event_id)
    _require_write_access(db, user, event)

    content = content.strip()
    if not content or len(content) > 1000:
        raise ValidationError(
            ErrorCode.INVALID_MESSAGE.value, "message content must be 1-1000 characters"
        )
    if message_type == MessageType.SYSTEM:
        raise ValidationError(ErrorCode.INVALID_MESSAGE.value, "invalid message type")

    message = Message(
        event_id=event.id,
        user_id=user.id,
        content=content,
        type=message_type,
        attachment=attachment,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    logger.info("message_sent", event_id=str(event.id), message_id=str(message.id))

    return message, relay_effects(db, message, is_online or (lambda _user_id: False))


def edit_message(
    db: Session,
    user: User,
    message_id: Any,
    content: str,
    now: datetime | None = None,
) -> tuple[Message, list[Effect]]:
    message = _get_message(db, message_id)
    if message.user_id != user.id:
        raise PermissionDeniedError(ErrorCode.CHAT_ACCESS_DENIED.value, "cannot edit this message")
    if message.type == MessageType.SYSTEM:
        raise ConflictError(
            ErrorCode.SYSTEM_MESSAGE_IMMUTABLE.value, "system messages cannot be edited"
        )

    now = now or utcnow()
    if now - ensure_aware(message.created_at) > EDIT_WINDOW:
        raise ConflictError(
            ErrorCode.EDIT_WINDOW_EXPIRED.value, "messages older than 15 minutes cannot be edited"
        )

    message.content = content.strip()
    message.is_edited = True
    message.edited_at = now
    db.add(message)
    db.commit()
    db.refresh(message)

    return message, [
        BroadcastToEventChat(message.event_id, "message_edited", message_payload(message))
    ]


def delete_message(db: Session, user: User, message_id: Any) -> tuple[Message, list[Effect]]:
    message = _get_message(db, message_id)
    if message.user_id != user.id and not user.is_admin:
        raise PermissionDeniedError(ErrorCode.CHAT_ACCESS_DENIED.value, "cannot delete this message")

    message.is_deleted = True
    message.deleted_at = utcnow()
    db.add(message)
    db.commit()
    logger.info("message_deleted", message_id=str(message.id), user_id=str(user.id))

    return message, [
        BroadcastToEventChat(
            message.event_id, "message_deleted", {"message_id": str(message.id)}
        )
    ]


def get_chat_participants(
    db: Session, user: User, event_id: Any, is_online: Callable[[uuid.UUID], bool]
) -> list[dict[str, Any]]:
    event = get_event(db, event_id)
    if not (
        user.is_admin
        or event.created_by_id == user.id
        or is_confirmed_participant(db, event.id, user.id)
    ):
        raise PermissionDeniedError(
            ErrorCode.CHAT_ACCESS_DENIED.value, "no access to this event chat"
        )

    creator = event.creator
    participants: list[dict[str, Any]] = [
        {
            "id": creator.id,
            "name": creator.name,
            "avatar_url": creator.avatar_url,
            "role": "creator",
            "joined_at": None,
            "is_online": is_online(creator.id),
        }
    ]
    rows = db.scalars(
        select(EventParticipant)
        .where(
            EventParticipant.event_id == event.id,
            EventParticipant.status == ParticipantStatus.CONFIRMED,
        )
        .order_by(EventParticipant.joined_at)
    ).all()
    for row in rows:
        participants.append(
            {
                "id": row.user.id,
                "name": row.user.name,
                "avatar_url": row.user.avatar_url,
                "role": "participant",
                "joined_at": row.joined_at,
                "is_online": is_online(row.user_id),
            }
        )
    return participants


def update_chat_settings(
    db: Session, user: User, event_id: Any, allow_chat: bool
) -> tuple[Event, list[Effect]]:
    event = get_event(db, event_id)
    if not (user.is_admin or event.created_by_id == user.id):
        raise PermissionDeniedError(
            ErrorCode.EVENT_NOT_OWNER.value, "not allowed to change chat settings"
        )

    event.allow_chat = allow_chat
    db.add(event)
    db.commit()
    return event, [
        BroadcastToEventChat(event.id, "chat_settings_updated", {"allow_chat": allow_chat})
    ]
