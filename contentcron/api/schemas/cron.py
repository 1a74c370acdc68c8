from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class JobRunErrorResponse(BaseModel):
    job_id: str
    kind: str
    message: str


class CronExecuteResponse(BaseModel):
    success: bool
    message: str
    processed: int
    succeeded: int
    failed: int
    skipped: int
    errors: list[JobRunErrorResponse]
    timestamp: datetime


class CronFailureResponse(BaseModel):
    error: str
    message: str
