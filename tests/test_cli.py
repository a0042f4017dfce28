from __future__ import annotations

from click.testing import CliRunner
from sqlalchemy import select

from eventhub.cli import cli
from eventhub.models import User, UserRole


def test_create_admin_creates_verified_admin(db_session):
    result = CliRunner().invoke(
        cli, ["create-admin", "Boss@Example.com", "--password", "Sup3rSecret", "--name", "Boss"]
    )
    assert result.exit_code == 0, result.output
    assert "created admin boss@example.com" in result.output

    user = db_session.scalar(select(User).where(User.email == "boss@example.com"))
    assert user.role == UserRole.ADMIN
    assert user.is_verified is True


def test_create_admin_promotes_existing_user(make_user, db_session):
    user = make_user("member@example.com")
    result = CliRunner().invoke(cli, ["create-admin", "member@example.com", "--password", "x"])
    assert result.exit_code == 0, result.output
    assert "promoted" in result.output

    db_session.expire_all()
    assert db_session.get(User, user.id).role == UserRole.ADMIN


def test_create_admin_rejects_weak_password():
    result = CliRunner().invoke(cli, ["create-admin", "weak@example.com", "--password", "short"])
    assert result.exit_code != 0


def test_cleanup_notifications_command():
    result = CliRunner().invoke(cli, ["cleanup-notifications", "--days", "7"])
    assert result.exit_code == 0, result.output
    assert "deleted 0 notifications" in result.output
