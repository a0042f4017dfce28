from __future__ import annotations

import uuid

from fastapi import APIRouter, Query

from eventhub.api.v1.responses import ok
from eventhub.api.v1.schemas.chat import (
    ChatParticipantOut,
    ChatSettingsIn,
    MessageCreate,
    MessageOut,
    MessageUpdate,
)
from eventhub.api.v1.schemas.common import build_pagination
from eventhub.auth.deps import CurrentUser, DBSession, Relay
from eventhub.services import EffectExecutor, chat_service

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/events/{event_id}/messages")
def get_messages(
    event_id: uuid.UUID,
    user: CurrentUser,
    db: DBSession,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=chat_service.DEFAULT_PAGE_SIZE, ge=1, le=100),
):
    event, messages, total = chat_service.get_messages(db, user, event_id, page, limit)
    pagination = build_pagination(page, limit, total).model_dump()
    pagination["has_more"] = pagination["has_next"]
    return ok(
        {
            "messages": [MessageOut.model_validate(m) for m in messages],
            "pagination": pagination,
            "event": {"id": str(event.id), "title": event.title, "allow_chat": event.allow_chat},
        }
    )


@router.post("/events/{event_id}/messages", status_code=201)
def send_message(
    event_id: uuid.UUID, payload: MessageCreate, user: CurrentUser, db: DBSession, relay: Relay
):
    message, effects = chat_service.send_message(
        db,
        user,
        event_id,
        payload.content,
        payload.type,
        payload.attachment,
        is_online=relay.is_online,
    )
    EffectExecutor(db, relay).apply(effects)
    return ok({"message": MessageOut.model_validate(message)}, "message sent")


@router.put("/messages/{message_id}")
def edit_message(
    message_id: uuid.UUID, payload: MessageUpdate, user: CurrentUser, db: DBSession, relay: Relay
):
    message, effects = chat_service.edit_message(db, user, message_id, payload.content)
    EffectExecutor(db, relay).apply(effects)
    return ok({"message": MessageOut.model_validate(message)}, "message edited")


@router.delete("/messages/{message_id}")
def delete_message(message_id: uuid.UUID, user: CurrentUser, db: DBSession, relay: Relay):
    _message, effects = chat_service.delete_message(db, user, message_id)
    EffectExecutor(db, relay).apply(effects)
    return ok(message="message deleted")


@router.get("/events/{event_id}/participants")
def chat_participants(event_id: uuid.UUID, user: CurrentUser, db: DBSession, relay: Relay):
    participants = chat_service.get_chat_participants(db, user, event_id, relay.is_online)
    return ok(
        {
            "participants": [ChatParticipantOut.model_validate(p) for p in participants],
            "online_count": sum(1 for p in participants if p["is_online"]),
        }
    )


@router.post("/events/{event_id}/settings")
def chat_settings(
    event_id: uuid.UUID, payload: ChatSettingsIn, user: CurrentUser, db: DBSession, relay: Relay
):
    event, effects = chat_service.update_chat_settings(db, user, event_id, payload.allow_chat)
    EffectExecutor(db, relay).apply(effects)
    return ok({"allow_chat": event.allow_chat}, "chat settings updated")
