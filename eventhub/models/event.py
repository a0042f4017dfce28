from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventhub.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type

if TYPE_CHECKING:
    from eventhub.models.event_participant import EventParticipant
    from eventhub.models.event_report import EventReport
    from eventhub.models.user import User


class EventStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EventCategory(str, Enum):
    CONFERENCE = "conference"
    WORKSHOP = "workshop"
    CONCERT = "concert"
    SPORT = "sport"
    NETWORKING = "networking"
    PARTY = "party"
    TRAINING = "training"
    CHARITY = "charity"
    ART = "art"
    TECHNOLOGY = "technology"
    BUSINESS = "business"
    OTHER = "other"


class Event(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "events"
    __table_args__ = (
        sa.Index("ix_events_status_starts_at", "status", "starts_at"),
        sa.Index("ix_events_category_status", "category", "status"),
        sa.Index("ix_events_city_status", "location_city", "status"),
        sa.CheckConstraint("capacity >= 1", name="ck_events_capacity_positive"),
    )

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[EventCategory] = mapped_column(
        enum_type(EventCategory, "event_category"), nullable=False
    )

    location_address: Mapped[str] = mapped_column(String(200), nullable=False)
    location_city: Mapped[str] = mapped_column(String(50), nullable=False)
    location_country: Mapped[str] = mapped_column(String(60), nullable=False, default="Italy")
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")

    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    tags: Mapped[list[str]] = mapped_column(sa.JSON, nullable=False, default=list)

    created_by_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Moderation
    status: Mapped[EventStatus] = mapped_column(
        enum_type(EventStatus, "event_status"),
        nullable=False,
        default=EventStatus.PENDING,
    )
    reviewed_by_id: Mapped[uuid.UUID | None] = mapped_column(
        sa.Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    report_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Settings
    allow_chat: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_approve_participants: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    creator: Mapped["User"] = relationship(foreign_keys=[created_by_id], lazy="joined")
    participants: Mapped[list["EventParticipant"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="EventParticipant.joined_at",
    )
    reports: Mapped[list["EventReport"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_free(self) -> bool:
        return not self.price_amount
