from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict


class RescheduleJobRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    scheduled_at: AwareDatetime


class JobResponse(BaseModel):
    id: str
    kind: str
    source_item_id: str
    scheduled_at: datetime
    status: str
    snapshot: dict[str, Any]
    last_run_at: datetime | None
    error: str | None
    created_at: datetime
    updated_at: datetime


class JobListResponse(BaseModel):
    items: list[JobResponse]
    next_cursor: str | None


class JobMetricsResponse(BaseModel):
    generated_at: datetime
    scheduled: int
    completed: int
    failed: int
    cancelled: int
    next_scheduled_at: datetime | None


class SyncErrorResponse(BaseModel):
    item_id: str
    kind: str
    message: str


class SyncResponse(BaseModel):
    created: dict[str, int]
    errors: list[SyncErrorResponse]
