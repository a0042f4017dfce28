from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from eventhub.api.v1.schemas.common import SchemaBase, UserSummary, UTCDateTime
from eventhub.models.event import EventStatus
from eventhub.models.event_report import ReportAction, ReportReason, ReportStatus


class RejectEventIn(BaseModel):
    reason: str = Field(min_length=10, max_length=500)


class ReviewReportIn(BaseModel):
    status: ReportStatus
    admin_notes: str | None = Field(default=None, max_length=500)
    action_taken: ReportAction = ReportAction.NONE

    @field_validator("status")
    @classmethod
    def _not_pending(cls, value: ReportStatus) -> ReportStatus:
        if value == ReportStatus.PENDING:
            raise ValueError("status must be one of reviewed, resolved, dismissed")
        return value


class BlockUserIn(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class ReportedEventOut(SchemaBase):
    id: UUID
    title: str
    status: EventStatus
    report_count: int


class ReportOut(SchemaBase):
    id: UUID
    event_id: UUID
    event: ReportedEventOut | None = None
    reporter: UserSummary
    reason: ReportReason
    description: str | None = None
    status: ReportStatus
    reviewed_by_id: UUID | None = None
    reviewed_at: UTCDateTime | None = None
    admin_notes: str | None = None
    action_taken: ReportAction
    created_at: UTCDateTime
