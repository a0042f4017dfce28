from __future__ import annotations

import click
from sqlalchemy import select

from eventhub.auth.password import check_password_strength, hash_password
from eventhub.core.logging import configure_logging
from eventhub.db import SessionLocal, init_db
from eventhub.models import User, UserRole
from eventhub.services import notifications_service


@click.group()
def cli() -> None:
    """EventHub maintenance commands."""
    configure_logging()


@cli.command("create-admin")
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--name", default="Administrator", show_default=True)
def create_admin(email: str, password: str, name: str) -> None:
    """Create an admin account, or promote an existing user to admin."""
    init_db()
    email = email.strip().lower()
    with SessionLocal() as db:
        user = db.scalar(select(User).where(User.email == email))
        if user:
            user.role = UserRole.ADMIN
            db.commit()
            click.echo(f"promoted {email} to admin")
            return

        try:
            check_password_strength(password)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--password") from exc

        db.add(
            User(
                email=email,
                name=name,
                password_hash=hash_password(password),
                role=UserRole.ADMIN,
                is_verified=True,
            )
        )
        db.commit()
        click.echo(f"created admin {email}")


@cli.command("cleanup-notifications")
@click.option("--days", default=30, show_default=True, type=click.IntRange(min=1))
def cleanup_notifications(days: int) -> None:
    """Delete read notifications older than DAYS."""
    with SessionLocal() as db:
        deleted = notifications_service.cleanup_old_notifications(db, days_old=days)
    click.echo(f"deleted {deleted} notifications")


if __name__ == "__main__":
    cli()
