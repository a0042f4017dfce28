"""Explicit state machines for event moderation and report review.

Any (state, action) pair missing from a table is rejected with a
ConflictError; callers never compare status strings directly.
"""
from __future__ import annotations

from enum import Enum

from eventhub.models.event import EventStatus
from eventhub.models.event_report import ReportStatus
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import ConflictError


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


EVENT_TRANSITIONS: dict[tuple[EventStatus, ModerationAction], EventStatus] = {
    (EventStatus.PENDING, ModerationAction.APPROVE): EventStatus.APPROVED,
    (EventStatus.PENDING, ModerationAction.REJECT): EventStatus.REJECTED,
}

REPORT_TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.PENDING: frozenset(
        {ReportStatus.REVIEWED, ReportStatus.RESOLVED, ReportStatus.DISMISSED}
    ),
    ReportStatus.REVIEWED: frozenset({ReportStatus.RESOLVED, ReportStatus.DISMISSED}),
    ReportStatus.RESOLVED: frozenset(),
    ReportStatus.DISMISSED: frozenset(),
}


def next_event_status(current: EventStatus, action: ModerationAction) -> EventStatus:
    try:
        return EVENT_TRANSITIONS[(current, action)]
    except KeyError:
        raise ConflictError(
            ErrorCode.EVENT_ALREADY_PROCESSED.value, "event already processed"
        ) from None


def next_report_status(current: ReportStatus, target: ReportStatus) -> ReportStatus:
    if target not in REPORT_TRANSITIONS.get(current, frozenset()):
        raise ConflictError(
            ErrorCode.INVALID_REPORT_TRANSITION.value,
            f"cannot move report from {current.value} to {target.value}",
        )
    return target
