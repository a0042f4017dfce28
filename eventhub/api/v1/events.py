from __future__ import annotations

import tempfile
import uuid
from datetime import datetime
from pathlib import Path

from fastapi import APIRouter, File, Query, UploadFile

from eventhub.api.v1.responses import ok
from eventhub.api.v1.schemas.common import build_pagination
from eventhub.api.v1.schemas.events import (
    EventCreate,
    EventFilters,
    EventOut,
    EventUpdate,
    ReportCreate,
)
from eventhub.auth.deps import CurrentUser, DBSession, OptionalUser, Relay
from eventhub.core.config import settings
from eventhub.models import Event
from eventhub.models.event import EventCategory
from eventhub.services import EffectExecutor, events_service, participation_service, reports_service
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import ValidationError
from eventhub.storage import get_storage

router = APIRouter(prefix="/events", tags=["events"])

IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
}


def event_list_data(db, events: list[Event], page: int, limit: int, total: int) -> dict:
    counts = events_service.active_participant_counts(db, [e.id for e in events])
    return {
        "events": [EventOut.from_event(e, active_count=counts.get(e.id, 0)) for e in events],
        "pagination": build_pagination(page, limit, total),
    }


@router.get("")
def list_events(
    db: DBSession,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    category: EventCategory | None = None,
    city: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    sort_by: str = "starts_at",
):
    filters = EventFilters(
        category=category,
        city=city,
        start_date=start_date,
        end_date=end_date,
        search=search,
        sort_by=sort_by,
    )
    events, total = events_service.list_events(db, filters, page, limit)
    return ok(event_list_data(db, events, page, limit, total))


@router.get("/stats")
def stats(db: DBSession):
    return ok(events_service.public_stats(db))


@router.get("/user/created")
def my_created_events(
    user: CurrentUser,
    db: DBSession,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    events, total = events_service.list_created_by(db, user, page, limit)
    return ok(event_list_data(db, events, page, limit, total))


@router.get("/user/joined")
def my_joined_events(
    user: CurrentUser,
    db: DBSession,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    events, total = events_service.list_joined_by(db, user, page, limit)
    return ok(event_list_data(db, events, page, limit, total))


@router.get("/{event_id}")
def get_event(event_id: uuid.UUID, db: DBSession, viewer: OptionalUser):
    event, flags = events_service.get_event_detail(db, event_id, viewer)
    out = EventOut.from_event(
        event,
        active_count=events_service.active_participant_count(db, event.id),
        viewer_flags=flags,
        include_participants=True,
    )
    return ok({"event": out})


@router.post("", status_code=201)
def create_event(payload: EventCreate, user: CurrentUser, db: DBSession, relay: Relay):
    event, effects = events_service.create_event(db, user, payload)
    EffectExecutor(db, relay).apply(effects)
    return ok({"event": EventOut.from_event(event, active_count=0)}, "event created, awaiting approval")


@router.put("/{event_id}")
def update_event(
    event_id: uuid.UUID, payload: EventUpdate, user: CurrentUser, db: DBSession, relay: Relay
):
    event, effects = events_service.update_event(db, user, event_id, payload)
    EffectExecutor(db, relay).apply(effects)
    out = EventOut.from_event(event, active_count=events_service.active_participant_count(db, event.id))
    return ok({"event": out}, "event updated")


@router.delete("/{event_id}")
def delete_event(event_id: uuid.UUID, user: CurrentUser, db: DBSession, relay: Relay):
    effects = events_service.delete_event(db, user, event_id)
    EffectExecutor(db, relay).apply(effects)
    return ok(message="event deleted")


@router.post("/{event_id}/join")
def join_event(event_id: uuid.UUID, user: CurrentUser, db: DBSession, relay: Relay):
    count, effects = participation_service.join_event(db, user, event_id)
    EffectExecutor(db, relay).apply(effects)
    return ok({"active_participants_count": count}, "joined event")


@router.post("/{event_id}/leave")
def leave_event(event_id: uuid.UUID, user: CurrentUser, db: DBSession, relay: Relay):
    count, effects = participation_service.leave_event(db, user, event_id)
    EffectExecutor(db, relay).apply(effects)
    return ok({"active_participants_count": count}, "left event")


@router.post("/{event_id}/report")
def report_event(
    event_id: uuid.UUID, payload: ReportCreate, user: CurrentUser, db: DBSession, relay: Relay
):
    count, effects = reports_service.report_event(
        db, user, event_id, payload.reason, payload.description
    )
    EffectExecutor(db, relay).apply(effects)
    return ok({"report_count": count}, "report submitted")


@router.post("/{event_id}/image")
def upload_event_image(
    event_id: uuid.UUID,
    user: CurrentUser,
    db: DBSession,
    file: UploadFile = File(...),
):
    event = events_service.get_event(db, event_id)
    events_service.require_manage_permission(user, event)

    content_type = (file.content_type or "").lower()
    if content_type not in settings.allowed_file_types:
        raise ValidationError(ErrorCode.INVALID_UPLOAD.value, "only jpeg, png and gif images are allowed")

    total_size = 0
    buffered = tempfile.SpooledTemporaryFile(max_size=8 * 1024 * 1024, mode="w+b")
    try:
        while True:
            chunk = file.file.read(1024 * 1024)
            if not chunk:
                break
            total_size += len(chunk)
            if total_size > settings.max_file_size:
                raise ValidationError(
                    ErrorCode.INVALID_UPLOAD.value,
                    f"file exceeds max size of {settings.max_file_size} bytes",
                )
            buffered.write(chunk)
        if total_size == 0:
            raise ValidationError(ErrorCode.INVALID_UPLOAD.value, "uploaded file is empty")

        buffered.seek(0)
        suffix = IMAGE_EXTENSIONS.get(content_type) or Path(file.filename or "").suffix.lower()
        key = f"events/{event.id}/{uuid.uuid4().hex}{suffix}"
        url = get_storage().put_file(key, buffered)
    finally:
        buffered.close()
        file.file.close()

    event = events_service.set_event_image(db, user, event.id, url)
    return ok({"image_url": event.image_url}, "image uploaded")
