from __future__ import annotations

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from eventhub.api.v1.schemas.common import SchemaBase, UserSummary, UTCDateTime
from eventhub.models.message import MessageType


def _trimmed_content(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("message content cannot be empty")
    if len(value) > 1000:
        raise ValueError("message content must be at most 1000 characters")
    return value


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    type: MessageType = MessageType.TEXT
    attachment: dict[str, Any] | None = None

    @field_validator("content")
    @classmethod
    def _content(cls, value: str) -> str:
        return _trimmed_content(value)

    @field_validator("type")
    @classmethod
    def _user_type(cls, value: MessageType) -> MessageType:
        if value == MessageType.SYSTEM:
            raise ValueError("type must be text or image")
        return value


class MessageUpdate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)

    @field_validator("content")
    @classmethod
    def _content(cls, value: str) -> str:
        return _trimmed_content(value)


class ChatSettingsIn(BaseModel):
    allow_chat: bool


class MessageOut(SchemaBase):
    id: UUID
    event_id: UUID
    author: UserSummary
    content: str
    type: MessageType
    attachment: dict[str, Any] | None = None
    is_edited: bool
    edited_at: UTCDateTime | None = None
    system_action: str | None = None
    system_target_user_id: UUID | None = None
    created_at: UTCDateTime


class ChatParticipantOut(UserSummary):
    role: Literal["creator", "participant"]
    joined_at: UTCDateTime | None = None
    is_online: bool = False
