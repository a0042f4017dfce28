from __future__ import annotations

from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy import func, select, update

from eventhub.core.timeutils import utcnow
from eventhub.models import Notification
from eventhub.models.notification import NotificationPriority, NotificationType
from eventhub.worker.tasks import cleanup_old_notifications
from tests.helpers import auth_headers


def _notify(db_session, user, title: str = "Hello", type_=NotificationType.SYSTEM, **kwargs):
    notification = Notification(
        recipient_id=user.id,
        type=type_,
        title=title,
        message=f"{title} message",
        **kwargs,
    )
    db_session.add(notification)
    db_session.commit()
    db_session.refresh(notification)
    return notification


def test_list_notifications_with_unread_count(client: TestClient, make_user, db_session):
    user = make_user("user@example.com")
    other = make_user("other@example.com")
    _notify(db_session, user, "One")
    _notify(db_session, user, "Two", type_=NotificationType.EVENT_APPROVED)
    _notify(db_session, user, "Three", is_read=True)
    _notify(db_session, other, "Not yours")

    data = client.get("/api/v1/notifications", headers=auth_headers(user)).json()["data"]
    assert {n["title"] for n in data["notifications"]} == {"One", "Two", "Three"}
    assert data["unread_count"] == 2
    assert data["pagination"]["total"] == 3

    unread = client.get(
        "/api/v1/notifications", params={"unread_only": True}, headers=auth_headers(user)
    ).json()["data"]
    assert {n["title"] for n in unread["notifications"]} == {"One", "Two"}

    typed = client.get(
        "/api/v1/notifications", params={"type": "event_approved"}, headers=auth_headers(user)
    ).json()["data"]
    assert [n["title"] for n in typed["notifications"]] == ["Two"]

    count = client.get("/api/v1/notifications/unread-count", headers=auth_headers(user))
    assert count.json()["data"] == {"count": 2}


def test_mark_read_and_mark_all(client: TestClient, make_user, db_session):
    user = make_user("user@example.com")
    first = _notify(db_session, user, "One", priority=NotificationPriority.HIGH)
    _notify(db_session, user, "Two")
    _notify(db_session, user, "Three")

    resp = client.put(f"/api/v1/notifications/{first.id}/read", headers=auth_headers(user))
    assert resp.status_code == 200
    body = resp.json()["data"]["notification"]
    assert body["is_read"] is True
    assert body["read_at"] is not None
    assert body["priority"] == "high"

    # marking again is a no-op
    again = client.put(f"/api/v1/notifications/{first.id}/read", headers=auth_headers(user))
    assert again.json()["data"]["notification"]["read_at"] == body["read_at"]

    marked = client.put("/api/v1/notifications/mark-all-read", headers=auth_headers(user))
    assert marked.json()["data"] == {"updated": 2}
    count = client.get("/api/v1/notifications/unread-count", headers=auth_headers(user))
    assert count.json()["data"]["count"] == 0


def test_cannot_touch_other_users_notifications(client: TestClient, make_user, db_session):
    owner = make_user("owner@example.com")
    other = make_user("other@example.com")
    notification = _notify(db_session, owner)

    resp = client.put(f"/api/v1/notifications/{notification.id}/read", headers=auth_headers(other))
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOTIFICATION_NOT_FOUND"
    resp = client.delete(f"/api/v1/notifications/{notification.id}", headers=auth_headers(other))
    assert resp.status_code == 404


def test_delete_notification(client: TestClient, make_user, db_session):
    user = make_user("user@example.com")
    notification = _notify(db_session, user)

    resp = client.delete(f"/api/v1/notifications/{notification.id}", headers=auth_headers(user))
    assert resp.status_code == 200
    db_session.expire_all()
    assert db_session.get(Notification, notification.id) is None


def test_cleanup_removes_only_old_read_notifications(make_user, db_session):
    user = make_user("user@example.com")
    old_read = _notify(db_session, user, "Old read", is_read=True)
    old_unread = _notify(db_session, user, "Old unread")
    _notify(db_session, user, "Fresh read", is_read=True)
    db_session.execute(
        update(Notification)
        .where(Notification.id.in_([old_read.id, old_unread.id]))
        .values(created_at=utcnow() - timedelta(days=45))
    )
    db_session.commit()

    result = cleanup_old_notifications.delay(days_old=30).get()
    assert result == {"deleted": 1, "days_old": 30}

    db_session.expire_all()
    titles = set(db_session.scalars(select(Notification.title)).all())
    assert titles == {"Old unread", "Fresh read"}
    assert db_session.scalar(select(func.count()).select_from(Notification)) == 2
