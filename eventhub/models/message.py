from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventhub.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    SYSTEM = "system"


class SystemAction(str, Enum):
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    EVENT_UPDATED = "event_updated"


SYSTEM_MESSAGE_TEXT = {
    SystemAction.USER_JOINED: "joined the event",
    SystemAction.USER_LEFT: "cancelled their registration",
    SystemAction.EVENT_UPDATED: "updated the event",
}


class Message(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "messages"
    __table_args__ = (sa.Index("ix_messages_event_created", "event_id", "created_at"),)

    event_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[MessageType] = mapped_column(
        enum_type(MessageType, "message_type"), nullable=False, default=MessageType.TEXT
    )
    attachment: Mapped[dict[str, Any] | None] = mapped_column(sa.JSON, nullable=True)

    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    system_action: Mapped[str | None] = mapped_column(String(32), nullable=True)
    system_target_user_id: Mapped[uuid.UUID | None] = mapped_column(
        sa.Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    author = relationship("User", foreign_keys=[user_id], lazy="joined")

    @property
    def is_system(self) -> bool:
        return self.type == MessageType.SYSTEM
