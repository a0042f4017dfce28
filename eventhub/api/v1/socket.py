from __future__ import annotations

import uuid

from fastapi import APIRouter

from eventhub.api.v1.responses import ok
from eventhub.auth.deps import CurrentUser, Relay

router = APIRouter(prefix="/socket", tags=["socket"])


@router.get("/stats")
def socket_stats(user: CurrentUser, relay: Relay):
    return ok(
        {
            "connected_users": relay.connected_count(),
            "user_ids": relay.connected_user_ids() if user.is_admin else None,
        }
    )


@router.get("/user/{user_id}/online")
def user_online(user_id: uuid.UUID, user: CurrentUser, relay: Relay):
    return ok({"user_id": str(user_id), "is_online": relay.is_online(user_id)})
