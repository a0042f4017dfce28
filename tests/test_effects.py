from __future__ import annotations

from kombu.exceptions import OperationalError
from sqlalchemy import select

from eventhub.models import Notification
from eventhub.models.notification import NotificationType
from eventhub.services.effects import CreateNotification, EffectExecutor, SendEmail
from eventhub.worker import tasks


def test_broker_failure_does_not_stop_later_effects(monkeypatch, make_user, db_session):
    user = make_user("user@example.com")

    def broker_down(*args, **kwargs):
        raise OperationalError("broker unreachable")

    monkeypatch.setattr(tasks.send_email, "delay", broker_down)

    created = EffectExecutor(db_session).apply(
        [
            SendEmail(to=user.email, subject="Welcome", html="<p>hi</p>"),
            CreateNotification(
                recipient_id=user.id,
                type=NotificationType.SYSTEM,
                title="Welcome",
                message="Welcome aboard",
            ),
        ]
    )

    assert [n.recipient_id for n in created] == [user.id]
    assert db_session.scalar(select(Notification.title)) == "Welcome"
