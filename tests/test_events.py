from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from sqlalchemy import func, select

from eventhub.models import Event, Message, Notification, User, UserRole
from eventhub.models.event import EventCategory, EventStatus
from eventhub.models.message import MessageType
from eventhub.models.notification import NotificationType
from tests.helpers import auth_headers


def _payload(**overrides) -> dict:
    starts_at = datetime.now(timezone.utc) + timedelta(days=7)
    payload = {
        "title": "Open air cinema",
        "description": "Classic movies under the stars in the old town square.",
        "category": "art",
        "location": {"address": "Piazza Maggiore", "city": "Bologna"},
        "starts_at": starts_at.isoformat(),
        "ends_at": (starts_at + timedelta(hours=2)).isoformat(),
        "capacity": 50,
        "tags": ["Cinema", "outdoor", "cinema"],
    }
    payload.update(overrides)
    return payload


def test_create_event_is_pending_and_notifies_admins(client: TestClient, make_user, db_session):
    creator = make_user("creator@example.com", name="Creator")
    admin = make_user("admin@example.com", role=UserRole.ADMIN)
    make_user("blocked-admin@example.com", role=UserRole.ADMIN, is_blocked=True)

    resp = client.post("/api/v1/events", json=_payload(), headers=auth_headers(creator))
    assert resp.status_code == 201
    event = resp.json()["data"]["event"]
    assert event["status"] == "pending"
    assert event["creator"]["name"] == "Creator"
    assert event["active_participants_count"] == 0
    assert event["price"]["is_free"] is True

    db_session.expire_all()
    assert db_session.get(User, creator.id).events_created == 1
    notifications = db_session.scalars(select(Notification)).all()
    assert [n.recipient_id for n in notifications] == [admin.id]
    assert notifications[0].type == NotificationType.SYSTEM


def test_create_event_validation(client: TestClient, make_user):
    creator = make_user("creator@example.com")
    headers = auth_headers(creator)

    past = datetime.now(timezone.utc) - timedelta(days=1)
    resp = client.post(
        "/api/v1/events",
        json=_payload(starts_at=past.isoformat(), ends_at=(past + timedelta(hours=1)).isoformat()),
        headers=headers,
    )
    assert resp.status_code == 400

    start = datetime.now(timezone.utc) + timedelta(days=2)
    resp = client.post(
        "/api/v1/events",
        json=_payload(starts_at=start.isoformat(), ends_at=(start - timedelta(hours=1)).isoformat()),
        headers=headers,
    )
    assert resp.status_code == 400

    resp = client.post("/api/v1/events", json=_payload(capacity=0), headers=headers)
    assert resp.status_code == 400

    naive = (datetime.utcnow() + timedelta(days=2)).replace(microsecond=0)
    resp = client.post(
        "/api/v1/events",
        json=_payload(starts_at=naive.isoformat(), ends_at=(naive + timedelta(hours=1)).isoformat()),
        headers=headers,
    )
    assert resp.status_code == 400


def test_create_event_requires_auth(client: TestClient):
    assert client.post("/api/v1/events", json=_payload()).status_code == 401


def test_public_listing_shows_only_approved(client: TestClient, make_user, make_event):
    creator = make_user("creator@example.com")
    make_event(creator, title="Approved gig")
    make_event(creator, title="Pending gig", status=EventStatus.PENDING)
    make_event(creator, title="Rejected gig", status=EventStatus.REJECTED)

    resp = client.get("/api/v1/events")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [e["title"] for e in data["events"]] == ["Approved gig"]
    assert data["pagination"] == {
        "current_page": 1,
        "total_pages": 1,
        "total": 1,
        "has_next": False,
        "has_prev": False,
    }


def test_listing_filters_and_pagination(client: TestClient, make_user, make_event):
    creator = make_user("creator@example.com")
    make_event(creator, title="Milan music", city="Milano", starts_in=timedelta(days=1))
    make_event(creator, title="Rome music", city="Roma", starts_in=timedelta(days=2))
    make_event(
        creator,
        title="Rome sport",
        city="Roma",
        category=EventCategory.SPORT,
        starts_in=timedelta(days=3),
    )

    resp = client.get("/api/v1/events", params={"city": "roma"})
    assert [e["title"] for e in resp.json()["data"]["events"]] == ["Rome music", "Rome sport"]

    resp = client.get("/api/v1/events", params={"category": "sport"})
    assert [e["title"] for e in resp.json()["data"]["events"]] == ["Rome sport"]

    resp = client.get("/api/v1/events", params={"search": "milan"})
    assert [e["title"] for e in resp.json()["data"]["events"]] == ["Milan music"]

    resp = client.get("/api/v1/events", params={"limit": 2, "page": 2})
    data = resp.json()["data"]
    assert [e["title"] for e in data["events"]] == ["Rome sport"]
    assert data["pagination"]["total_pages"] == 2
    assert data["pagination"]["has_prev"] is True
    assert data["pagination"]["has_next"] is False


def test_detail_of_pending_event_is_hidden_from_public(client: TestClient, make_user, make_event):
    creator = make_user("creator@example.com")
    other = make_user("other@example.com")
    admin = make_user("admin@example.com", role=UserRole.ADMIN)
    event = make_event(creator, status=EventStatus.PENDING)

    assert client.get(f"/api/v1/events/{event.id}").status_code == 403
    assert client.get(f"/api/v1/events/{event.id}", headers=auth_headers(other)).status_code == 403
    assert client.get(f"/api/v1/events/{event.id}", headers=auth_headers(creator)).status_code == 200
    assert client.get(f"/api/v1/events/{event.id}", headers=auth_headers(admin)).status_code == 200


def test_detail_viewer_flags_and_view_count(
    client: TestClient, make_user, make_event, add_participant
):
    creator = make_user("creator@example.com")
    guest = make_user("guest@example.com", name="Guest")
    event = make_event(creator)
    add_participant(event, guest)

    anon = client.get(f"/api/v1/events/{event.id}").json()["data"]["event"]
    assert anon["is_user_participant"] is False
    assert anon["can_user_report"] is False
    assert anon["view_count"] == 1

    mine = client.get(f"/api/v1/events/{event.id}", headers=auth_headers(guest)).json()
    detail = mine["data"]["event"]
    assert detail["is_user_participant"] is True
    assert detail["is_user_creator"] is False
    assert detail["can_user_report"] is True
    assert detail["active_participants_count"] == 1
    assert [p["user"]["name"] for p in detail["participants"]] == ["Guest"]
    assert detail["view_count"] == 2


def test_detail_unknown_event_is_404(client: TestClient):
    resp = client.get("/api/v1/events/00000000-0000-0000-0000-000000000000")
    assert resp.status_code == 404
    assert resp.json()["code"] == "EVENT_NOT_FOUND"


def test_update_event_by_creator_notifies_participants(
    client: TestClient, make_user, make_event, add_participant, db_session
):
    creator = make_user("creator@example.com")
    guest = make_user("guest@example.com")
    event = make_event(creator)
    add_participant(event, guest)

    resp = client.put(
        f"/api/v1/events/{event.id}",
        json={"title": "Jazz in the park, extended", "location": {"city": "Torino"}},
        headers=auth_headers(creator),
    )
    assert resp.status_code == 200
    body = resp.json()["data"]["event"]
    assert body["title"] == "Jazz in the park, extended"
    assert body["location"]["city"] == "Torino"
    assert body["location"]["address"] == "Via Roma 1"

    notifications = db_session.scalars(
        select(Notification).where(Notification.type == NotificationType.EVENT_UPDATED)
    ).all()
    assert [n.recipient_id for n in notifications] == [guest.id]
    system = db_session.scalars(select(Message).where(Message.type == MessageType.SYSTEM)).all()
    assert len(system) == 1


def test_update_event_forbidden_for_others(client: TestClient, make_user, make_event):
    creator = make_user("creator@example.com")
    other = make_user("other@example.com")
    event = make_event(creator)

    resp = client.put(
        f"/api/v1/events/{event.id}", json={"title": "Hijacked"}, headers=auth_headers(other)
    )
    assert resp.status_code == 403


def test_capacity_cannot_drop_below_participants(
    client: TestClient, make_user, make_event, add_participant
):
    creator = make_user("creator@example.com")
    event = make_event(creator, capacity=5)
    add_participant(event, make_user("a@example.com"))
    add_participant(event, make_user("b@example.com"))

    resp = client.put(
        f"/api/v1/events/{event.id}", json={"capacity": 1}, headers=auth_headers(creator)
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "CAPACITY_BELOW_PARTICIPANTS"


def test_delete_event_by_admin(client: TestClient, make_user, make_event, db_session):
    creator = make_user("creator@example.com")
    admin = make_user("admin@example.com", role=UserRole.ADMIN)
    event = make_event(creator)

    resp = client.delete(f"/api/v1/events/{event.id}", headers=auth_headers(admin))
    assert resp.status_code == 200
    db_session.expire_all()
    assert db_session.get(Event, event.id) is None
    assert client.get(f"/api/v1/events/{event.id}").status_code == 404


def test_created_and_joined_listings(client: TestClient, make_user, make_event, add_participant):
    creator = make_user("creator@example.com")
    guest = make_user("guest@example.com")
    pending = make_event(creator, title="Pending one", status=EventStatus.PENDING)
    approved = make_event(creator, title="Approved one")
    add_participant(approved, guest)

    created = client.get("/api/v1/events/user/created", headers=auth_headers(creator)).json()
    assert {e["id"] for e in created["data"]["events"]} == {str(pending.id), str(approved.id)}

    joined = client.get("/api/v1/events/user/joined", headers=auth_headers(guest)).json()
    assert [e["id"] for e in joined["data"]["events"]] == [str(approved.id)]


def test_public_stats(client: TestClient, make_user, make_event):
    creator = make_user("creator@example.com")
    make_event(creator, city="Milano")
    make_event(creator, city="Roma")
    make_event(creator, city="Roma", status=EventStatus.PENDING)

    data = client.get("/api/v1/events/stats").json()["data"]
    assert data == {"total_events": 2, "total_users": 1, "total_cities": 2}


def test_upload_event_image(client: TestClient, make_user, make_event, db_session):
    creator = make_user("creator@example.com")
    event = make_event(creator)

    resp = client.post(
        f"/api/v1/events/{event.id}/image",
        files={"file": ("poster.png", b"\x89PNG fake image bytes", "image/png")},
        headers=auth_headers(creator),
    )
    assert resp.status_code == 200
    url = resp.json()["data"]["image_url"]
    assert url.startswith("/uploads/events/")
    assert url.endswith(".png")
    assert client.get(url).content == b"\x89PNG fake image bytes"

    rejected = client.post(
        f"/api/v1/events/{event.id}/image",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=auth_headers(creator),
    )
    assert rejected.status_code == 400
    assert rejected.json()["code"] == "INVALID_UPLOAD"
    assert db_session.scalar(select(func.count()).select_from(Event)) == 1
