from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from eventhub.core.config import settings
from eventhub.db import SessionLocal
from eventhub.services import notifications_service
from eventhub.worker.celery_app import celery_app

logger = get_task_logger(__name__)


@celery_app.task(
    name="send_email",
    autoretry_for=(smtplib.SMTPException, OSError),
    retry_backoff=True,
    max_retries=3,
)
def send_email(to: str, subject: str, html: str) -> bool:
    if not settings.email_user or not settings.email_pass:
        logger.warning("send_email skipped to=%s: EMAIL_USER or EMAIL_PASS not configured", to)
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"EventHub <{settings.email_from}>"
    msg["To"] = to
    msg.attach(MIMEText(html, "html", "utf-8"))

    with smtplib.SMTP(settings.email_host, settings.email_port, timeout=30) as server:
        server.ehlo()
        server.starttls()
        server.ehlo()
        server.login(settings.email_user, settings.email_pass)
        server.send_message(msg)

    logger.info("send_email sent to=%s subject=%s", to, subject)
    return True


@celery_app.task(name="cleanup_old_notifications")
def cleanup_old_notifications(days_old: int = 30) -> dict:
    db: Session = SessionLocal()
    try:
        deleted = notifications_service.cleanup_old_notifications(db, days_old=days_old)
        return {"deleted": deleted, "days_old": days_old}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
