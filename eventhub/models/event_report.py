from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

import sqlalchemy as sa
from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventhub.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type


class ReportReason(str, Enum):
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    SPAM = "spam"
    FALSE_INFORMATION = "false_information"
    EVENT_CANCELLED = "event_cancelled"
    TERMS_VIOLATION = "terms_violation"
    OFFENSIVE_CONTENT = "offensive_content"
    SCAM = "scam"
    OTHER = "other"


class ReportStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ReportAction(str, Enum):
    NONE = "none"
    WARNING_SENT = "warning_sent"
    EVENT_REMOVED = "event_removed"
    USER_WARNED = "user_warned"
    USER_SUSPENDED = "user_suspended"
    EVENT_EDITED = "event_edited"


class EventReport(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "event_reports"
    __table_args__ = (
        UniqueConstraint("event_id", "reported_by_id", name="uq_event_report_event_user"),
        sa.Index("ix_event_reports_event_status", "event_id", "status"),
        sa.Index("ix_event_reports_status_created", "status", "created_at"),
    )

    event_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    reported_by_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reason: Mapped[ReportReason] = mapped_column(enum_type(ReportReason, "report_reason"), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[ReportStatus] = mapped_column(
        enum_type(ReportStatus, "report_status"),
        nullable=False,
        default=ReportStatus.PENDING,
    )
    reviewed_by_id: Mapped[uuid.UUID | None] = mapped_column(
        sa.Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    action_taken: Mapped[ReportAction] = mapped_column(
        enum_type(ReportAction, "report_action"),
        nullable=False,
        default=ReportAction.NONE,
    )

    event = relationship("Event", back_populates="reports")
    reporter = relationship("User", foreign_keys=[reported_by_id], lazy="joined")
