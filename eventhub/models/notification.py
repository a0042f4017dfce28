from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventhub.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type


class NotificationType(str, Enum):
    USER_JOINED_EVENT = "user_joined_event"
    USER_LEFT_EVENT = "user_left_event"
    EVENT_APPROVED = "event_approved"
    EVENT_REJECTED = "event_rejected"
    EVENT_REPORTED = "event_reported"
    EVENT_UPDATED = "event_updated"
    NEW_MESSAGE = "new_message"
    USER_BLOCKED = "user_blocked"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Notification(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "notifications"
    __table_args__ = (
        sa.Index("ix_notifications_recipient_read_created", "recipient_id", "is_read", "created_at"),
        sa.Index("ix_notifications_priority_created", "priority", "created_at"),
    )

    recipient_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID | None] = mapped_column(
        sa.Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[NotificationType] = mapped_column(
        enum_type(NotificationType, "notification_type"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)

    # event_id, event_title, message_id, report_count, report_reason, action_url, metadata
    data: Mapped[dict[str, Any]] = mapped_column(sa.JSON, nullable=False, default=dict)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    priority: Mapped[NotificationPriority] = mapped_column(
        enum_type(NotificationPriority, "notification_priority"),
        nullable=False,
        default=NotificationPriority.NORMAL,
    )
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    sender = relationship("User", foreign_keys=[sender_id], lazy="joined")
