from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from contentcron.db.models import JobKind, JobStatus


@dataclass(slots=True)
class JobSnapshot:
    id: str
    kind: JobKind
    source_item_id: str
    scheduled_at: datetime
    status: JobStatus
    snapshot: dict[str, Any]
    last_run_at: datetime | None
    error: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class JobClaim:
    job_id: str
    token: str
    expires_at: datetime


@dataclass(slots=True)
class JobMetrics:
    generated_at: datetime
    scheduled: int
    completed: int
    failed: int
    cancelled: int
    next_scheduled_at: datetime | None


@dataclass(slots=True)
class SyncItemError:
    item_id: str
    kind: JobKind
    message: str


@dataclass(slots=True)
class SyncReport:
    created: dict[JobKind, int] = field(default_factory=lambda: {kind: 0 for kind in JobKind})
    errors: list[SyncItemError] = field(default_factory=list)

    @property
    def total_created(self) -> int:
        return sum(self.created.values())


@dataclass(slots=True)
class JobRunError:
    job_id: str
    kind: JobKind
    message: str


@dataclass(slots=True)
class RunReport:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[JobRunError] = field(default_factory=list)
