from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventhub.core.config import settings
from eventhub.core.timeutils import utcnow
from eventhub.models import Event, EventReport, User
from eventhub.models.event import EventStatus
from eventhub.models.event_report import ReportAction, ReportReason, ReportStatus
from eventhub.models.notification import NotificationPriority, NotificationType
from eventhub.services.effects import CreateNotification, Effect, NotifyAdmins
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import ConflictError, NotFoundError
from eventhub.services.transitions import next_report_status

logger = structlog.get_logger()


def _count_reports(db: Session, event_id: Any) -> int:
    return int(
        db.scalar(
            select(func.count()).select_from(EventReport).where(EventReport.event_id == event_id)
        )
        or 0
    )


def _lock_event(db: Session, event_id: Any) -> Event:
    # Serializes concurrent reports on one event so escalation fires once
    event = db.scalar(
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if not event:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")
    return event


def should_escalate(previous_count: int, new_count: int, threshold: int) -> bool:
    """Edge-triggered: true only on the report that reaches the threshold."""
    return previous_count < threshold <= new_count


def report_event(
    db: Session,
    user: User,
    event_id: Any,
    reason: ReportReason,
    description: str | None = None,
) -> tuple[int, list[Effect]]:
    event = _lock_event(db, event_id)

    existing = db.scalar(
        select(EventReport.id).where(
            EventReport.event_id == event.id,
            EventReport.reported_by_id == user.id,
        )
    )
    if existing:
        raise ConflictError(ErrorCode.ALREADY_REPORTED.value, "you have already reported this event")

    previous_count = _count_reports(db, event.id)
    db.add(
        EventReport(
            event_id=event.id,
            reported_by_id=user.id,
            reason=reason,
            description=description,
        )
    )
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(
            ErrorCode.ALREADY_REPORTED.value, "you have already reported this event"
        ) from exc

    new_count = _count_reports(db, event.id)
    event.report_count = new_count
    db.add(event)
    db.commit()
    logger.info("event_reported", event_id=str(event.id), user_id=str(user.id), count=new_count)

    effects: list[Effect] = []
    threshold = settings.report_threshold
    if should_escalate(previous_count, new_count, threshold):
        data = {
            "event_id": str(event.id),
            "event_title": event.title,
            "report_count": new_count,
            "report_reason": reason.value,
            "action_url": f"/admin/events/{event.id}",
        }
        effects.append(
            NotifyAdmins(
                type=NotificationType.EVENT_REPORTED,
                title="Event reported",
                message=f'The event "{event.title}" has received {new_count} reports',
                priority=NotificationPriority.HIGH,
                data=data,
                push_event="event_reported",
                push_payload=data,
            )
        )
        logger.warning("report_threshold_reached", event_id=str(event.id), count=new_count)
    return new_count, effects


def list_reports(
    db: Session,
    status: ReportStatus | None,
    event_id: Any | None,
    page: int,
    limit: int,
) -> tuple[list[EventReport], int]:
    stmt = select(EventReport)
    if status is not None:
        stmt = stmt.where(EventReport.status == status)
    if event_id is not None:
        stmt = stmt.where(EventReport.event_id == event_id)

    total = int(db.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
    reports = db.scalars(
        stmt.order_by(EventReport.created_at.desc(), EventReport.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(reports), total


def review_report(
    db: Session,
    admin: User,
    report_id: Any,
    status: ReportStatus,
    admin_notes: str | None,
    action_taken: ReportAction,
) -> tuple[EventReport, list[Effect]]:
    """Apply an admin decision; ``user_suspended`` blocks the reported event's creator, never an admin."""
    report = db.get(EventReport, report_id)
    if not report:
        raise NotFoundError(ErrorCode.REPORT_NOT_FOUND.value, "report not found")

    report.status = next_report_status(report.status, status)
    report.reviewed_by_id = admin.id
    report.reviewed_at = utcnow()
    report.admin_notes = admin_notes
    report.action_taken = action_taken
    db.add(report)

    effects: list[Effect] = []
    event = db.get(Event, report.event_id)
    if action_taken == ReportAction.EVENT_REMOVED and event is not None:
        event.status = EventStatus.REJECTED
        event.reviewed_by_id = admin.id
        event.reviewed_at = utcnow()
        db.add(event)
    elif action_taken == ReportAction.USER_SUSPENDED and event is not None:
        creator = db.get(User, event.created_by_id)
        if creator is not None and not creator.is_admin:
            db.execute(update(User).where(User.id == creator.id).values(is_blocked=True))
            effects.append(
                CreateNotification(
                    recipient_id=creator.id,
                    sender_id=admin.id,
                    type=NotificationType.USER_BLOCKED,
                    title="Account blocked",
                    message=f'Your account has been blocked after reports on "{event.title}"',
                    priority=NotificationPriority.HIGH,
                    data={"event_id": str(event.id), "event_title": event.title},
                )
            )

    db.commit()
    db.refresh(report)
    logger.info(
        "report_reviewed",
        report_id=str(report.id),
        admin_id=str(admin.id),
        status=report.status.value,
        action=action_taken.value,
    )
    return report, effects
