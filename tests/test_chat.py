from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from eventhub.core.timeutils import ensure_aware, utcnow
from eventhub.models import Message, Notification, UserRole
from eventhub.models.message import MessageType, SystemAction
from eventhub.models.notification import NotificationType
from eventhub.services import chat_service
from eventhub.services.exceptions import ConflictError
from tests.helpers import auth_headers


def _send(client: TestClient, event, user, content: str = "Hello everyone"):
    return client.post(
        f"/api/v1/chat/events/{event.id}/messages",
        json={"content": content},
        headers=auth_headers(user),
    )


def test_only_creator_and_participants_can_write(
    client: TestClient, make_user, make_event, add_participant
):
    creator = make_user("creator@example.com")
    guest = make_user("guest@example.com")
    outsider = make_user("outsider@example.com")
    admin = make_user("admin@example.com", role=UserRole.ADMIN)
    event = make_event(creator)
    add_participant(event, guest)

    assert _send(client, event, creator).status_code == 201
    assert _send(client, event, guest).status_code == 201

    denied = _send(client, event, outsider)
    assert denied.status_code == 403
    assert denied.json()["code"] == "CHAT_ACCESS_DENIED"

    listed = client.get(
        f"/api/v1/chat/events/{event.id}/messages", headers=auth_headers(outsider)
    )
    assert listed.status_code == 403

    # admins may read and moderate but not post
    read = client.get(f"/api/v1/chat/events/{event.id}/messages", headers=auth_headers(admin))
    assert read.status_code == 200
    assert _send(client, event, admin).status_code == 403


def test_disabled_chat_rejects_messages(client: TestClient, make_user, make_event, add_participant):
    creator = make_user("creator@example.com")
    guest = make_user("guest@example.com")
    event = make_event(creator, allow_chat=False)
    add_participant(event, guest)

    resp = _send(client, event, guest)
    assert resp.status_code == 403
    assert resp.json()["code"] == "CHAT_DISABLED"


def test_message_content_is_validated(client: TestClient, make_user, make_event):
    creator = make_user("creator@example.com")
    event = make_event(creator)

    assert _send(client, event, creator, content="   ").status_code == 400
    assert _send(client, event, creator, content="x" * 1001).status_code == 400

    resp = _send(client, event, creator, content="  trimmed  ")
    assert resp.json()["data"]["message"]["content"] == "trimmed"

    system = client.post(
        f"/api/v1/chat/events/{event.id}/messages",
        json={"content": "fake system", "type": "system"},
        headers=auth_headers(creator),
    )
    assert system.status_code == 400


def test_messages_are_listed_oldest_first(client: TestClient, make_user, make_event, db_session):
    creator = make_user("creator@example.com")
    event = make_event(creator)
    base = utcnow() - timedelta(hours=1)
    for minute in range(5):
        db_session.add(
            Message(
                event_id=event.id,
                user_id=creator.id,
                content=f"message {minute}",
                created_at=base + timedelta(minutes=minute),
            )
        )
    db_session.commit()

    resp = client.get(
        f"/api/v1/chat/events/{event.id}/messages",
        params={"limit": 3},
        headers=auth_headers(creator),
    )
    data = resp.json()["data"]
    assert [m["content"] for m in data["messages"]] == ["message 2", "message 3", "message 4"]
    assert data["pagination"]["has_more"] is True
    assert data["event"]["allow_chat"] is True

    older = client.get(
        f"/api/v1/chat/events/{event.id}/messages",
        params={"limit": 3, "page": 2},
        headers=auth_headers(creator),
    ).json()["data"]
    assert [m["content"] for m in older["messages"]] == ["message 0", "message 1"]
    assert older["pagination"]["has_more"] is False


def test_sending_notifies_offline_participants_only(
    client: TestClient, make_user, make_event, add_participant, db_session
):
    creator = make_user("creator@example.com", name="Creator")
    guest = make_user("guest@example.com")
    event = make_event(creator)
    add_participant(event, guest)

    assert _send(client, event, creator, content="See you there").status_code == 201

    db_session.expire_all()
    notifications = db_session.scalars(
        select(Notification).where(Notification.type == NotificationType.NEW_MESSAGE)
    ).all()
    assert [n.recipient_id for n in notifications] == [guest.id]
    assert notifications[0].data["message_content"] == "See you there"


def test_edit_window(make_user, make_event, db_session):
    creator = make_user("creator@example.com")
    event = make_event(creator)
    message, _ = chat_service.send_message(db_session, creator, event.id, "first draft")
    created_at = ensure_aware(message.created_at)

    edited, effects = chat_service.edit_message(
        db_session, creator, message.id, "second draft", now=created_at + timedelta(minutes=14, seconds=59)
    )
    assert edited.content == "second draft"
    assert edited.is_edited is True
    assert effects[0].name == "message_edited"

    with pytest.raises(ConflictError) as excinfo:
        chat_service.edit_message(
            db_session, creator, message.id, "too late", now=created_at + timedelta(minutes=15, seconds=1)
        )
    assert excinfo.value.code == "EDIT_WINDOW_EXPIRED"


def test_only_author_can_edit(client: TestClient, make_user, make_event, add_participant):
    creator = make_user("creator@example.com")
    guest = make_user("guest@example.com")
    event = make_event(creator)
    add_participant(event, guest)
    message_id = _send(client, event, guest).json()["data"]["message"]["id"]

    resp = client.put(
        f"/api/v1/chat/messages/{message_id}",
        json={"content": "not mine"},
        headers=auth_headers(creator),
    )
    assert resp.status_code == 403

    resp = client.put(
        f"/api/v1/chat/messages/{message_id}",
        json={"content": "fixed typo"},
        headers=auth_headers(guest),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["message"]["is_edited"] is True


def test_system_messages_are_immutable(make_user, make_event, db_session):
    creator = make_user("creator@example.com")
    event = make_event(creator)
    message = Message(
        event_id=event.id,
        user_id=creator.id,
        content="Creator joined the event",
        type=MessageType.SYSTEM,
        system_action=SystemAction.USER_JOINED.value,
    )
    db_session.add(message)
    db_session.commit()

    with pytest.raises(ConflictError) as excinfo:
        chat_service.edit_message(db_session, creator, message.id, "rewritten")
    assert excinfo.value.code == "SYSTEM_MESSAGE_IMMUTABLE"


def test_soft_delete_by_author_or_admin(
    client: TestClient, make_user, make_event, add_participant, db_session
):
    creator = make_user("creator@example.com")
    guest = make_user("guest@example.com")
    admin = make_user("admin@example.com", role=UserRole.ADMIN)
    event = make_event(creator)
    add_participant(event, guest)
    first = _send(client, event, guest, content="first").json()["data"]["message"]["id"]
    second = _send(client, event, guest, content="second").json()["data"]["message"]["id"]

    assert client.delete(f"/api/v1/chat/messages/{first}", headers=auth_headers(creator)).status_code == 403
    assert client.delete(f"/api/v1/chat/messages/{first}", headers=auth_headers(guest)).status_code == 200
    assert client.delete(f"/api/v1/chat/messages/{second}", headers=auth_headers(admin)).status_code == 200
    assert client.delete(f"/api/v1/chat/messages/{second}", headers=auth_headers(admin)).status_code == 404

    listed = client.get(f"/api/v1/chat/events/{event.id}/messages", headers=auth_headers(guest))
    assert listed.json()["data"]["messages"] == []

    db_session.expire_all()
    rows = db_session.scalars(select(Message)).all()
    assert len(rows) == 2
    assert all(row.is_deleted for row in rows)


def test_chat_participants(client: TestClient, make_user, make_event, add_participant):
    creator = make_user("creator@example.com", name="Creator")
    guest = make_user("guest@example.com", name="Guest")
    outsider = make_user("outsider@example.com")
    event = make_event(creator)
    add_participant(event, guest)

    resp = client.get(f"/api/v1/chat/events/{event.id}/participants", headers=auth_headers(guest))
    data = resp.json()["data"]
    assert [(p["name"], p["role"]) for p in data["participants"]] == [
        ("Creator", "creator"),
        ("Guest", "participant"),
    ]
    assert data["online_count"] == 0

    denied = client.get(
        f"/api/v1/chat/events/{event.id}/participants", headers=auth_headers(outsider)
    )
    assert denied.status_code == 403


def test_chat_settings(client: TestClient, make_user, make_event, add_participant, db_session):
    creator = make_user("creator@example.com")
    guest = make_user("guest@example.com")
    event = make_event(creator)
    add_participant(event, guest)

    denied = client.post(
        f"/api/v1/chat/events/{event.id}/settings",
        json={"allow_chat": False},
        headers=auth_headers(guest),
    )
    assert denied.status_code == 403

    resp = client.post(
        f"/api/v1/chat/events/{event.id}/settings",
        json={"allow_chat": False},
        headers=auth_headers(creator),
    )
    assert resp.status_code == 200
    assert resp.json()["data"] == {"allow_chat": False}
    assert _send(client, event, guest).status_code == 403
