from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from eventhub.api.v1.schemas.events import EventCreate, EventFilters, EventUpdate
from eventhub.core.timeutils import ensure_aware
from eventhub.models import Event, EventParticipant, EventReport, Message, User
from eventhub.models.event import EventStatus
from eventhub.models.event_participant import ParticipantStatus
from eventhub.models.message import SystemAction
from eventhub.models.notification import NotificationType
from eventhub.services.effects import (
    AdjustUserCounter,
    BroadcastEventUpdate,
    CreateNotification,
    Effect,
    NotifyAdmins,
    PostSystemMessage,
)
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = structlog.get_logger()

SORT_COLUMNS = {
    "starts_at": Event.starts_at.asc(),
    "-starts_at": Event.starts_at.desc(),
    "created_at": Event.created_at.asc(),
    "-created_at": Event.created_at.desc(),
    "title": Event.title.asc(),
    "view_count": Event.view_count.desc(),
}


def is_creator(user: User | None, event: Event) -> bool:
    return user is not None and event.created_by_id == user.id


def require_manage_permission(user: User, event: Event) -> None:
    if user.is_admin or is_creator(user, event):
        return
    raise PermissionDeniedError(ErrorCode.EVENT_NOT_OWNER.value, "not allowed to manage this event")


def get_event(db: Session, event_id: Any) -> Event:
    event = db.get(Event, event_id)
    if not event:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")
    return event


def active_participant_count(db: Session, event_id: Any) -> int:
    return int(
        db.scalar(
            select(func.count())
            .select_from(EventParticipant)
            .where(
                EventParticipant.event_id == event_id,
                EventParticipant.status == ParticipantStatus.CONFIRMED,
            )
        )
        or 0
    )


def active_participant_counts(db: Session, event_ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
    if not event_ids:
        return {}
    rows = db.execute(
        select(EventParticipant.event_id, func.count())
        .where(
            EventParticipant.event_id.in_(event_ids),
            EventParticipant.status == ParticipantStatus.CONFIRMED,
        )
        .group_by(EventParticipant.event_id)
    ).all()
    counts = {event_id: 0 for event_id in event_ids}
    counts.update({event_id: int(count) for event_id, count in rows})
    return counts


def confirmed_participant_ids(db: Session, event_id: Any) -> list[uuid.UUID]:
    return list(
        db.scalars(
            select(EventParticipant.user_id).where(
                EventParticipant.event_id == event_id,
                EventParticipant.status == ParticipantStatus.CONFIRMED,
            )
        ).all()
    )


def is_confirmed_participant(db: Session, event_id: Any, user_id: Any) -> bool:
    return (
        db.scalar(
            select(EventParticipant.id).where(
                EventParticipant.event_id == event_id,
                EventParticipant.user_id == user_id,
                EventParticipant.status == ParticipantStatus.CONFIRMED,
            )
        )
        is not None
    )


def has_reported(db: Session, event_id: Any, user_id: Any) -> bool:
    return (
        db.scalar(
            select(EventReport.id).where(
                EventReport.event_id == event_id,
                EventReport.reported_by_id == user_id,
            )
        )
        is not None
    )


def paginate(db: Session, stmt, order_by, page: int, limit: int) -> tuple[list[Event], int]:
    total = int(db.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
    events = db.scalars(stmt.order_by(*order_by).offset((page - 1) * limit).limit(limit)).unique().all()
    return list(events), total


def list_events(
    db: Session, filters: EventFilters, page: int, limit: int
) -> tuple[list[Event], int]:
    """Public listing: approved events only."""
    stmt = select(Event).where(Event.status == EventStatus.APPROVED)
    if filters.category:
        stmt = stmt.where(Event.category == filters.category)
    if filters.city:
        stmt = stmt.where(Event.location_city.ilike(f"%{filters.city.strip()}%"))
    if filters.start_date:
        stmt = stmt.where(Event.starts_at >= filters.start_date)
    if filters.end_date:
        stmt = stmt.where(Event.starts_at <= filters.end_date)
    if filters.search:
        like = f"%{filters.search.strip()}%"
        stmt = stmt.where(or_(Event.title.ilike(like), Event.description.ilike(like)))

    order = SORT_COLUMNS.get(filters.sort_by, SORT_COLUMNS["starts_at"])
    return paginate(db, stmt, [order, Event.id], page, limit)


def list_all_events(
    db: Session,
    status: EventStatus | None,
    search: str | None,
    page: int,
    limit: int,
) -> tuple[list[Event], int]:
    """Admin listing across every moderation status, newest first."""
    stmt = select(Event)
    if status:
        stmt = stmt.where(Event.status == status)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Event.title.ilike(like), Event.description.ilike(like)))
    return paginate(db, stmt, [Event.created_at.desc(), Event.id], page, limit)


def list_created_by(db: Session, user: User, page: int, limit: int) -> tuple[list[Event], int]:
    stmt = select(Event).where(Event.created_by_id == user.id)
    return paginate(db, stmt, [Event.created_at.desc(), Event.id], page, limit)


def list_joined_by(db: Session, user: User, page: int, limit: int) -> tuple[list[Event], int]:
    stmt = (
        select(Event)
        .join(EventParticipant, EventParticipant.event_id == Event.id)
        .where(
            EventParticipant.user_id == user.id,
            EventParticipant.status == ParticipantStatus.CONFIRMED,
        )
    )
    return paginate(db, stmt, [Event.starts_at.asc(), Event.id], page, limit)


def viewer_flags(db: Session, event: Event, viewer: User | None) -> dict[str, bool]:
    if viewer is None:
        return {"is_user_participant": False, "is_user_creator": False, "can_user_report": False}
    return {
        "is_user_participant": is_confirmed_participant(db, event.id, viewer.id),
        "is_user_creator": is_creator(viewer, event),
        "can_user_report": not has_reported(db, event.id, viewer.id),
    }


def get_event_detail(db: Session, event_id: Any, viewer: User | None) -> tuple[Event, dict[str, bool]]:
    event = get_event(db, event_id)
    if event.status != EventStatus.APPROVED and not (
        viewer is not None and (viewer.is_admin or is_creator(viewer, event))
    ):
        raise PermissionDeniedError(ErrorCode.EVENT_NOT_APPROVED.value, "event is not public")

    flags = viewer_flags(db, event, viewer)
    db.execute(update(Event).where(Event.id == event.id).values(view_count=Event.view_count + 1))
    db.commit()
    db.refresh(event)
    return event, flags


def create_event(db: Session, creator: User, payload: EventCreate) -> tuple[Event, list[Effect]]:
    event = Event(
        title=payload.title,
        description=payload.description,
        category=payload.category,
        location_address=payload.location.address,
        location_city=payload.location.city,
        location_country=payload.location.country,
        latitude=payload.location.latitude,
        longitude=payload.location.longitude,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        capacity=payload.capacity,
        price_amount=payload.price.amount,
        price_currency=payload.price.currency,
        image_url=payload.image_url,
        tags=payload.tags,
        allow_chat=payload.settings.allow_chat,
        auto_approve_participants=payload.settings.auto_approve_participants,
        is_private=payload.settings.is_private,
        created_by_id=creator.id,
        status=EventStatus.PENDING,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("event_created", event_id=str(event.id), user_id=str(creator.id))

    data = {"event_id": str(event.id), "event_title": event.title, "organizer_name": creator.name}
    effects: list[Effect] = [
        AdjustUserCounter(creator.id, "events_created", 1),
        NotifyAdmins(
            type=NotificationType.SYSTEM,
            title="New event awaiting approval",
            message=f'The event "{event.title}" is awaiting approval',
            sender_id=creator.id,
            data={**data, "action_url": f"/admin/events/{event.id}"},
            push_event="new_event_pending",
            push_payload=data,
        ),
    ]
    return event, effects


def _check_time_window(starts_at: datetime, ends_at: datetime) -> None:
    if ensure_aware(ends_at) <= ensure_aware(starts_at):
        raise ValidationError(ErrorCode.INVALID_EVENT_TIMES.value, "ends_at must be after starts_at")


def update_event(
    db: Session, user: User, event_id: Any, patch: EventUpdate
) -> tuple[Event, list[Effect]]:
    event = get_event(db, event_id)
    require_manage_permission(user, event)

    data = patch.model_dump(exclude_unset=True)
    if data.get("capacity") is not None:
        if data["capacity"] < active_participant_count(db, event.id):
            raise ConflictError(
                ErrorCode.CAPACITY_BELOW_PARTICIPANTS.value,
                "capacity cannot be below current participant count",
            )
    _check_time_window(
        data.get("starts_at") or event.starts_at,
        data.get("ends_at") or event.ends_at,
    )

    for key in ("title", "description", "category", "starts_at", "ends_at", "capacity", "image_url", "tags"):
        if data.get(key) is not None:
            setattr(event, key, data[key])
    if patch.location is not None:
        for key, value in patch.location.model_dump(exclude_unset=True).items():
            if value is None and key in {"address", "city", "country"}:
                continue
            attr = key if key in {"latitude", "longitude"} else f"location_{key}"
            setattr(event, attr, value)
    if patch.price is not None:
        event.price_amount = patch.price.amount
        event.price_currency = patch.price.currency
    if patch.settings is not None:
        for key, value in patch.settings.model_dump(exclude_none=True).items():
            setattr(event, key, value)

    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("event_updated", event_id=str(event.id), user_id=str(user.id))

    effects: list[Effect] = [
        CreateNotification(
            recipient_id=participant_id,
            sender_id=user.id,
            type=NotificationType.EVENT_UPDATED,
            title="Event updated",
            message=f'The event "{event.title}" has been updated',
            data={
                "event_id": str(event.id),
                "event_title": event.title,
                "action_url": f"/events/{event.id}",
            },
        )
        for participant_id in confirmed_participant_ids(db, event.id)
    ]
    effects.append(PostSystemMessage(event.id, user.id, SystemAction.EVENT_UPDATED))
    effects.append(
        BroadcastEventUpdate(
            event.id,
            "event_updated",
            {"event_id": str(event.id), "fields": sorted(data)},
        )
    )
    return event, effects


def delete_event(db: Session, user: User, event_id: Any) -> list[Effect]:
    event = get_event(db, event_id)
    require_manage_permission(user, event)

    creator_id = event.created_by_id
    deleted_id = event.id
    # SQLite does not enforce ON DELETE CASCADE without the pragma; remove dependents explicitly.
    db.execute(delete(Message).where(Message.event_id == deleted_id))
    db.delete(event)
    db.commit()
    logger.info("event_deleted", event_id=str(deleted_id), user_id=str(user.id))

    return [
        AdjustUserCounter(creator_id, "events_created", -1),
        BroadcastEventUpdate(deleted_id, "event_deleted", {"event_id": str(deleted_id)}),
    ]


def set_event_image(db: Session, user: User, event_id: Any, image_url: str) -> Event:
    event = get_event(db, event_id)
    require_manage_permission(user, event)
    event.image_url = image_url
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def public_stats(db: Session) -> dict[str, int]:
    total_events = db.scalar(
        select(func.count()).select_from(Event).where(Event.status == EventStatus.APPROVED)
    )
    total_users = db.scalar(
        select(func.count()).select_from(User).where(User.is_blocked.is_(False))
    )
    total_cities = db.scalar(
        select(func.count(func.distinct(Event.location_city))).where(
            Event.status == EventStatus.APPROVED
        )
    )
    return {
        "total_events": int(total_events or 0),
        "total_users": int(total_users or 0),
        "total_cities": int(total_cities or 0),
    }