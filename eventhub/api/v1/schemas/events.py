from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from eventhub.api.v1.schemas.common import SchemaBase, UserSummary, UTCDateTime
from eventhub.core.timeutils import ensure_aware, utcnow
from eventhub.models.event import EventCategory, EventStatus
from eventhub.models.event_participant import ParticipantStatus
from eventhub.models.event_report import ReportReason

if TYPE_CHECKING:
    from eventhub.models import Event


def _ensure_tzaware(value: datetime | None) -> datetime | None:
    if value is None:
        return value
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError("datetime must be timezone-aware")
    return value.astimezone(timezone.utc)


class TZAwareMixin(BaseModel):
    @field_validator("starts_at", "ends_at", mode="after", check_fields=False)
    @classmethod
    def _validate_tzaware(cls, value: datetime | None) -> datetime | None:
        return _ensure_tzaware(value)


class LocationIn(BaseModel):
    address: str = Field(min_length=1, max_length=200)
    city: str = Field(min_length=1, max_length=50)
    country: str = Field(default="Italy", min_length=1, max_length=60)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class LocationPatch(BaseModel):
    address: str | None = Field(default=None, min_length=1, max_length=200)
    city: str | None = Field(default=None, min_length=1, max_length=50)
    country: str | None = Field(default=None, min_length=1, max_length=60)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class PriceIn(BaseModel):
    amount: float = Field(default=0.0, ge=0)
    currency: str = Field(default="EUR", min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()


class EventSettingsIn(BaseModel):
    allow_chat: bool = True
    auto_approve_participants: bool = True
    is_private: bool = False


class EventSettingsPatch(BaseModel):
    allow_chat: bool | None = None
    auto_approve_participants: bool | None = None
    is_private: bool | None = None


def _clean_tags(value: list[str] | None) -> list[str] | None:
    if value is None:
        return value
    tags = [t.strip().lower() for t in value if t and t.strip()]
    if any(len(t) > 30 for t in tags):
        raise ValueError("tags must be at most 30 characters")
    return list(dict.fromkeys(tags))


class EventCreate(TZAwareMixin):
    title: str = Field(min_length=3, max_length=100)
    description: str = Field(min_length=10, max_length=2000)
    category: EventCategory
    location: LocationIn
    starts_at: datetime
    ends_at: datetime
    capacity: int = Field(ge=1, le=10000)
    price: PriceIn = Field(default_factory=PriceIn)
    image_url: str | None = Field(default=None, max_length=500)
    tags: list[str] = Field(default_factory=list, max_length=10)
    settings: EventSettingsIn = Field(default_factory=EventSettingsIn)

    @field_validator("title", "description")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("tags")
    @classmethod
    def _tags(cls, value: list[str]) -> list[str]:
        return _clean_tags(value) or []

    @model_validator(mode="after")
    def _validate_time_bounds(self):
        if self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        if self.starts_at <= utcnow():
            raise ValueError("starts_at must be in the future")
        return self


class EventUpdate(TZAwareMixin):
    title: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = Field(default=None, min_length=10, max_length=2000)
    category: EventCategory | None = None
    location: LocationPatch | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    capacity: int | None = Field(default=None, ge=1, le=10000)
    price: PriceIn | None = None
    image_url: str | None = Field(default=None, max_length=500)
    tags: list[str] | None = Field(default=None, max_length=10)
    settings: EventSettingsPatch | None = None

    @field_validator("tags")
    @classmethod
    def _tags(cls, value: list[str] | None) -> list[str] | None:
        return _clean_tags(value)

    @model_validator(mode="after")
    def _validate_time_bounds(self):
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class EventFilters(BaseModel):
    category: EventCategory | None = None
    city: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None
    sort_by: str = "starts_at"


class ReportCreate(BaseModel):
    reason: ReportReason
    description: str | None = Field(default=None, max_length=1000)


class LocationOut(BaseModel):
    address: str
    city: str
    country: str
    latitude: float | None = None
    longitude: float | None = None


class PriceOut(BaseModel):
    amount: float
    currency: str
    is_free: bool


class EventSettingsOut(BaseModel):
    allow_chat: bool
    auto_approve_participants: bool
    is_private: bool


class ParticipantOut(SchemaBase):
    user: UserSummary
    status: ParticipantStatus
    joined_at: UTCDateTime
    cancelled_at: UTCDateTime | None = None


class EventOut(BaseModel):
    id: UUID
    title: str
    description: str
    category: EventCategory
    location: LocationOut
    starts_at: UTCDateTime
    ends_at: UTCDateTime
    capacity: int
    price: PriceOut
    image_url: str | None = None
    tags: list[str]
    creator: UserSummary
    status: EventStatus
    reviewed_by_id: UUID | None = None
    reviewed_at: UTCDateTime | None = None
    rejection_reason: str | None = None
    report_count: int
    view_count: int
    settings: EventSettingsOut
    active_participants_count: int
    created_at: UTCDateTime
    updated_at: UTCDateTime

    is_user_participant: bool = False
    is_user_creator: bool = False
    can_user_report: bool = False
    participants: list[ParticipantOut] | None = None

    @classmethod
    def from_event(
        cls,
        event: "Event",
        *,
        active_count: int,
        viewer_flags: dict[str, bool] | None = None,
        include_participants: bool = False,
    ) -> "EventOut":
        participants = None
        if include_participants:
            participants = [
                ParticipantOut.model_validate(p)
                for p in event.participants
                if p.status == ParticipantStatus.CONFIRMED
            ]
        return cls(
            id=event.id,
            title=event.title,
            description=event.description,
            category=event.category,
            location=LocationOut(
                address=event.location_address,
                city=event.location_city,
                country=event.location_country,
                latitude=event.latitude,
                longitude=event.longitude,
            ),
            starts_at=ensure_aware(event.starts_at),
            ends_at=ensure_aware(event.ends_at),
            capacity=event.capacity,
            price=PriceOut(
                amount=event.price_amount,
                currency=event.price_currency,
                is_free=event.is_free,
            ),
            image_url=event.image_url,
            tags=list(event.tags or []),
            creator=UserSummary.model_validate(event.creator),
            status=event.status,
            reviewed_by_id=event.reviewed_by_id,
            reviewed_at=event.reviewed_at,
            rejection_reason=event.rejection_reason,
            report_count=event.report_count,
            view_count=event.view_count,
            settings=EventSettingsOut(
                allow_chat=event.allow_chat,
                auto_approve_participants=event.auto_approve_participants,
                is_private=event.is_private,
            ),
            active_participants_count=active_count,
            created_at=event.created_at,
            updated_at=event.updated_at,
            participants=participants,
            **(viewer_flags or {}),
        )
