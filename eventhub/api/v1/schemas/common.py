from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from eventhub.core.timeutils import ensure_aware

# SQLite hands back naive datetimes; every outgoing timestamp is UTC-aware.
UTCDateTime = Annotated[datetime, AfterValidator(ensure_aware)]


class SchemaBase(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")


class UserSummary(SchemaBase):
    id: UUID
    name: str
    avatar_url: str | None = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total: int
    has_next: bool
    has_prev: bool


class PageParams(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(
        current_page=page,
        total_pages=math.ceil(total / limit) if limit else 0,
        total=total,
        has_next=page * limit < total,
        has_prev=page > 1,
    )
