from __future__ import annotations

from typing import Any
from uuid import UUID

from eventhub.api.v1.schemas.common import SchemaBase, UserSummary, UTCDateTime
from eventhub.models.notification import NotificationPriority, NotificationType


class NotificationOut(SchemaBase):
    id: UUID
    recipient_id: UUID
    sender: UserSummary | None = None
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any]
    is_read: bool
    read_at: UTCDateTime | None = None
    priority: NotificationPriority
    created_at: UTCDateTime
