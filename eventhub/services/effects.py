"""Side effects decided by workflows and applied after the primary commit.

Workflows return ``(result, effects)``; routes hand the effects to an
``EffectExecutor``. Each effect is applied and committed on its own, and a
failing effect is logged and skipped so it never undoes the primary change.
"""
from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

import sqlalchemy as sa
import structlog
from kombu.exceptions import KombuError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventhub.models import Message, MessageType, Notification, SystemAction, User, UserRole
from eventhub.models.message import SYSTEM_MESSAGE_TEXT
from eventhub.models.notification import NotificationPriority, NotificationType

if TYPE_CHECKING:
    from eventhub.realtime.relay import RealtimeRelay

logger = structlog.get_logger()

USER_COUNTERS = frozenset({"events_created", "events_attended"})


@dataclass(frozen=True)
class CreateNotification:
    recipient_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    sender_id: uuid.UUID | None = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotifyAdmins:
    """One notification per non-blocked admin, plus an optional push to the admins room."""

    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: dict[str, Any] = field(default_factory=dict)
    sender_id: uuid.UUID | None = None
    push_event: str | None = None
    push_payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PostSystemMessage:
    event_id: uuid.UUID
    user_id: uuid.UUID
    action: SystemAction


@dataclass(frozen=True)
class AdjustUserCounter:
    user_id: uuid.UUID
    counter: str
    delta: int


@dataclass(frozen=True)
class BroadcastEventUpdate:
    event_id: uuid.UUID
    update_type: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BroadcastToEventChat:
    event_id: uuid.UUID
    name: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SendEmail:
    to: str
    subject: str
    html: str


Effect = Union[
    CreateNotification,
    NotifyAdmins,
    PostSystemMessage,
    AdjustUserCounter,
    BroadcastEventUpdate,
    BroadcastToEventChat,
    SendEmail,
]


def notification_payload(notification: Notification) -> dict[str, Any]:
    from eventhub.api.v1.schemas.notifications import NotificationOut

    return NotificationOut.model_validate(notification).model_dump(mode="json")


def message_payload(message: Message) -> dict[str, Any]:
    from eventhub.api.v1.schemas.chat import MessageOut

    return MessageOut.model_validate(message).model_dump(mode="json")


class EffectExecutor:
    def __init__(self, db: Session, relay: "RealtimeRelay | None" = None) -> None:
        self.db = db
        self.relay = relay

    def apply(self, effects: Iterable[Effect]) -> list[Notification]:
        """Apply effects in order; returns the notifications that were persisted."""
        created: list[Notification] = []
        for effect in effects:
            try:
                created.extend(self._apply_one(effect))
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.warning("effect_failed", effect=type(effect).__name__, error=str(exc))
            except (KombuError, OSError) as exc:
                logger.warning("effect_failed", effect=type(effect).__name__, error=str(exc))
        return created

    def _apply_one(self, effect: Effect) -> list[Notification]:
        if isinstance(effect, CreateNotification):
            return [self._create_notification(effect)]
        if isinstance(effect, NotifyAdmins):
            return self._notify_admins(effect)
        if isinstance(effect, PostSystemMessage):
            self._post_system_message(effect)
        elif isinstance(effect, AdjustUserCounter):
            self._adjust_counter(effect)
        elif isinstance(effect, BroadcastEventUpdate):
            self._dispatch("send_event_update", effect.event_id, effect.update_type, effect.data)
        elif isinstance(effect, BroadcastToEventChat):
            self._dispatch("broadcast_to_event_chat", effect.event_id, effect.name, effect.payload)
        elif isinstance(effect, SendEmail):
            self._queue_email(effect)
        else:
            raise TypeError(f"unknown effect: {effect!r}")
        return []

    def _dispatch(self, method: str, *args: Any) -> None:
        if self.relay is None:
            return
        self.relay.dispatch(getattr(self.relay, method), *args)

    def _create_notification(self, effect: CreateNotification) -> Notification:
        notification = Notification(
            recipient_id=effect.recipient_id,
            sender_id=effect.sender_id,
            type=effect.type,
            title=effect.title[:100],
            message=effect.message[:500],
            data=dict(effect.data),
            priority=effect.priority,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        if self.relay is not None and self.relay.is_online(notification.recipient_id):
            self._dispatch(
                "send_notification_to_user",
                notification.recipient_id,
                notification_payload(notification),
            )
        return notification

    def _notify_admins(self, effect: NotifyAdmins) -> list[Notification]:
        admin_ids = self.db.scalars(
            select(User.id).where(User.role == UserRole.ADMIN, User.is_blocked.is_(False))
        ).all()
        created = [
            self._create_notification(
                CreateNotification(
                    recipient_id=admin_id,
                    type=effect.type,
                    title=effect.title,
                    message=effect.message,
                    sender_id=effect.sender_id,
                    priority=effect.priority,
                    data=effect.data,
                )
            )
            for admin_id in admin_ids
        ]
        if effect.push_event:
            self._dispatch("notify_admins", effect.push_event, effect.push_payload)
        return created

    def _post_system_message(self, effect: PostSystemMessage) -> None:
        message = Message(
            event_id=effect.event_id,
            user_id=effect.user_id,
            content=SYSTEM_MESSAGE_TEXT[effect.action],
            type=MessageType.SYSTEM,
            system_action=effect.action.value,
            system_target_user_id=effect.user_id,
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        self._dispatch(
            "broadcast_to_event_chat", effect.event_id, "message_received", message_payload(message)
        )

    def _adjust_counter(self, effect: AdjustUserCounter) -> None:
        if effect.counter not in USER_COUNTERS:
            raise ValueError(f"unknown user counter: {effect.counter}")
        column = getattr(User, effect.counter)
        adjusted = column + effect.delta
        self.db.execute(
            update(User)
            .where(User.id == effect.user_id)
            .values({effect.counter: sa.case((adjusted < 0, 0), else_=adjusted)})
        )
        self.db.commit()

    def _queue_email(self, effect: SendEmail) -> None:
        from eventhub.worker.tasks import send_email

        send_email.delay(effect.to, effect.subject, effect.html)
        logger.info("email_queued", to=effect.to, subject=effect.subject)
