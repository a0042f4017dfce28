"""Socket.IO relay for live chat, presence and notification fan-out.

Rooms:
- ``user-<id>``: every socket of one user (notifications, unread counts)
- ``admins``: connected administrators
- ``event-<id>``: members of an event chat
- ``event-updates-<id>``: watchers of an event page

Clients authenticate with the same access token as the HTTP API, sent either
as ``auth: {token}`` or as ``?token=`` on the handshake URL.
"""
from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import parse_qs

import anyio.from_thread
import socketio
import structlog
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from eventhub.core.config import settings
from eventhub.core.timeutils import utcnow
from eventhub.db import SessionLocal
from eventhub.models import Event, Message, User, UserRole
from eventhub.realtime.registry import ConnectionRegistry
from eventhub.services import auth_service, chat_service, notifications_service
from eventhub.services.effects import EffectExecutor, message_payload
from eventhub.services.exceptions import ServiceError

logger = structlog.get_logger()

ADMINS_ROOM = "admins"


def room_for_user(user_id: object) -> str:
    return f"user-{user_id}"


def room_for_event_chat(event_id: object) -> str:
    return f"event-{event_id}"


def room_for_event_updates(event_id: object) -> str:
    return f"event-updates-{event_id}"


def extract_token(environ: dict[str, Any] | None, auth: Any | None) -> str | None:
    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    scope: Any = environ or {}
    if isinstance(scope, dict) and isinstance(scope.get("asgi.scope"), dict):
        scope = scope["asgi.scope"]

    query_string: str | bytes = ""
    if isinstance(scope, dict):
        query_string = scope.get("query_string") or scope.get("QUERY_STRING") or ""
    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    token = parse_qs(str(query_string)).get("token", [None])[0]
    if isinstance(token, str) and token:
        return token
    return None


def _uuid_from(data: Any, *keys: str) -> uuid.UUID | None:
    value = data
    if isinstance(data, dict):
        value = next((data[k] for k in keys if data.get(k)), None)
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _event_id_from(data: Any) -> uuid.UUID | None:
    return _uuid_from(data, "event_id", "eventId")


class RealtimeRelay:
    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session] = SessionLocal,
        server: socketio.AsyncServer | None = None,
        registry: ConnectionRegistry | None = None,
    ) -> None:
        self.sio = server or socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=settings.cors_allow_origins,
            logger=False,
            engineio_logger=False,
        )
        self.registry = registry or ConnectionRegistry()
        self._session_factory = session_factory
        self._register_handlers()

    def _register_handlers(self) -> None:
        handlers = {
            "connect": self.on_connect,
            "disconnect": self.on_disconnect,
            "join_event_chat": self.on_join_event_chat,
            "leave_event_chat": self.on_leave_event_chat,
            "typing_start": self.on_typing_start,
            "typing_stop": self.on_typing_stop,
            "new_message": self.on_new_message,
            "watch_event": self.on_watch_event,
            "unwatch_event": self.on_unwatch_event,
            "mark_notification_read": self.on_mark_notification_read,
            "get_unread_count": self.on_get_unread_count,
        }
        for name, handler in handlers.items():
            self.sio.on(name, handler)

    # Presence

    def is_online(self, user_id: object) -> bool:
        return self.registry.is_online(user_id)

    def connected_count(self) -> int:
        return len(self.registry)

    def connected_user_ids(self) -> list[str]:
        return self.registry.user_ids()

    def clear(self) -> None:
        self.registry.clear()

    # Database helpers; run in the thread pool

    def _load_identity(self, token: str) -> dict[str, Any] | None:
        with self._session_factory() as db:
            try:
                user = auth_service.authenticate_token(db, token)
            except ServiceError as exc:
                logger.info("socket_auth_failed", code=exc.code)
                return None
            return {
                "user_id": str(user.id),
                "name": user.name,
                "avatar_url": user.avatar_url,
                "role": user.role.value,
            }

    def _can_join_chat(self, user_id: str, event_id: uuid.UUID) -> bool:
        with self._session_factory() as db:
            user = db.get(User, uuid.UUID(user_id))
            event = db.get(Event, event_id)
            if user is None or event is None or user.is_blocked:
                return False
            return chat_service.can_read_chat(db, user, event)

    def _unread_count(self, user_id: str) -> int:
        with self._session_factory() as db:
            return notifications_service.unread_count(db, uuid.UUID(user_id))

    def _mark_read(self, user_id: str, notification_id: uuid.UUID) -> None:
        with self._session_factory() as db:
            notifications_service.mark_read(db, uuid.UUID(user_id), notification_id)

    def _relay_message(
        self, user_id: str, event_id: uuid.UUID, message_id: uuid.UUID
    ) -> dict[str, Any] | None:
        with self._session_factory() as db:
            message = db.get(Message, message_id)
            if message is None or message.event_id != event_id or message.is_deleted:
                return None
            # Only the author may relay their own message
            if str(message.user_id) != user_id:
                return None
            effects = chat_service.relay_effects(db, message, self.is_online)
            # Broadcast is emitted by the caller on the loop; only persist notifications here.
            EffectExecutor(db).apply(effects[1:])
            return message_payload(message)

    # Socket handlers

    async def _session(self, sid: str) -> dict[str, Any]:
        session = await self.sio.get_session(sid)
        return session if isinstance(session, dict) else {}

    async def on_connect(self, sid: str, environ: dict[str, Any], auth: Any | None = None) -> None:
        token = extract_token(environ, auth)
        if not token:
            raise ConnectionRefusedError("unauthorized")

        identity = await run_in_threadpool(self._load_identity, token)
        if identity is None:
            raise ConnectionRefusedError("unauthorized")

        user_id = identity["user_id"]
        await self.sio.save_session(sid, identity)
        self.registry.add(user_id, sid)
        await self.sio.enter_room(sid, room_for_user(user_id))
        if identity["role"] == UserRole.ADMIN.value:
            await self.sio.enter_room(sid, ADMINS_ROOM)

        logger.info("socket_connected", user_id=user_id, sid=sid)
        await self.sio.emit(
            "user_status_changed",
            {"user_id": user_id, "is_online": True, "last_seen": None},
        )
        await self.push_unread_count(user_id, to=sid)

    async def on_disconnect(self, sid: str, *args: Any) -> None:
        user_id = self.registry.remove_sid(sid)
        if user_id is None:
            return
        logger.info("socket_disconnected", user_id=user_id, sid=sid)
        await self.sio.emit(
            "user_status_changed",
            {"user_id": user_id, "is_online": False, "last_seen": utcnow().isoformat()},
        )

    async def on_join_event_chat(self, sid: str, data: Any = None) -> None:
        session = await self._session(sid)
        user_id = session.get("user_id")
        event_id = _event_id_from(data)
        if not user_id or event_id is None:
            return
        if not await run_in_threadpool(self._can_join_chat, user_id, event_id):
            logger.info("chat_join_denied", user_id=user_id, event_id=str(event_id))
            return

        room = room_for_event_chat(event_id)
        await self.sio.enter_room(sid, room)
        await self.sio.emit(
            "user_joined_chat",
            {
                "user_id": user_id,
                "user_name": session.get("name"),
                "user_avatar": session.get("avatar_url"),
            },
            to=room,
            skip_sid=sid,
        )

    async def on_leave_event_chat(self, sid: str, data: Any = None) -> None:
        session = await self._session(sid)
        event_id = _event_id_from(data)
        if event_id is None:
            return
        room = room_for_event_chat(event_id)
        await self.sio.leave_room(sid, room)
        await self.sio.emit(
            "user_left_chat",
            {"user_id": session.get("user_id"), "user_name": session.get("name")},
            to=room,
            skip_sid=sid,
        )

    async def on_typing_start(self, sid: str, data: Any = None) -> None:
        session = await self._session(sid)
        event_id = _event_id_from(data)
        if event_id is None:
            return
        await self.sio.emit(
            "user_typing",
            {"user_id": session.get("user_id"), "user_name": session.get("name")},
            to=room_for_event_chat(event_id),
            skip_sid=sid,
        )

    async def on_typing_stop(self, sid: str, data: Any = None) -> None:
        session = await self._session(sid)
        event_id = _event_id_from(data)
        if event_id is None:
            return
        await self.sio.emit(
            "user_stopped_typing",
            {"user_id": session.get("user_id")},
            to=room_for_event_chat(event_id),
            skip_sid=sid,
        )

    async def on_new_message(self, sid: str, data: Any = None) -> None:
        session = await self._session(sid)
        user_id = session.get("user_id")
        event_id = _event_id_from(data)
        message_id = _uuid_from(data, "message_id", "messageId")
        if not user_id or event_id is None or message_id is None:
            return
        payload = await run_in_threadpool(self._relay_message, user_id, event_id, message_id)
        if payload is None:
            logger.info("message_relay_ignored", user_id=user_id, message_id=str(message_id))
            return
        await self.broadcast_to_event_chat(event_id, "message_received", payload)

    async def on_watch_event(self, sid: str, data: Any = None) -> None:
        event_id = _event_id_from(data)
        if event_id is not None:
            await self.sio.enter_room(sid, room_for_event_updates(event_id))

    async def on_unwatch_event(self, sid: str, data: Any = None) -> None:
        event_id = _event_id_from(data)
        if event_id is not None:
            await self.sio.leave_room(sid, room_for_event_updates(event_id))

    async def on_mark_notification_read(self, sid: str, data: Any = None) -> None:
        session = await self._session(sid)
        user_id = session.get("user_id")
        notification_id = _uuid_from(data, "notification_id", "notificationId")
        if not user_id or notification_id is None:
            return
        try:
            await run_in_threadpool(self._mark_read, user_id, notification_id)
        except ServiceError as exc:
            logger.info("notification_mark_read_failed", user_id=user_id, code=exc.code)
        await self.push_unread_count(user_id, to=sid)

    async def on_get_unread_count(self, sid: str, data: Any = None) -> None:
        session = await self._session(sid)
        user_id = session.get("user_id")
        if user_id:
            await self.push_unread_count(user_id, to=sid)

    # Server-side pushes

    async def push_unread_count(self, user_id: str, to: str | None = None) -> None:
        count = await run_in_threadpool(self._unread_count, user_id)
        await self.sio.emit(
            "unread_notifications_count", {"count": count}, to=to or room_for_user(user_id)
        )

    async def send_notification_to_user(self, user_id: object, payload: dict[str, Any]) -> bool:
        if not self.registry.is_online(user_id):
            return False
        await self.sio.emit("new_notification", payload, to=room_for_user(user_id))
        return True

    async def send_event_update(
        self, event_id: object, update_type: str, data: dict[str, Any]
    ) -> None:
        await self.sio.emit(
            "event_updated",
            {"type": update_type, "data": data},
            to=room_for_event_updates(event_id),
        )

    async def broadcast_to_event_chat(
        self, event_id: object, name: str, payload: dict[str, Any]
    ) -> None:
        await self.sio.emit(name, payload, to=room_for_event_chat(event_id))

    async def notify_admins(self, name: str, payload: dict[str, Any]) -> None:
        await self.sio.emit(name, payload, to=ADMINS_ROOM)

    def dispatch(self, func: Callable[..., Awaitable[Any]], *args: Any) -> bool:
        """Run a push from a worker thread on the server's event loop.

        Skipped while nobody is connected. Failures are logged and reported
        as False so request handlers never fail on a push.
        """
        if not len(self.registry):
            return False
        try:
            anyio.from_thread.run(func, *args)
        except RuntimeError as exc:
            logger.warning("realtime_dispatch_failed", push=func.__name__, error=str(exc))
            return False
        return True
