from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from contentcron.db.models import JobStatus
from contentcron.jobs.service import JobService, coerce_utc
from contentcron.jobs.types import JobSnapshot


def is_due(job: JobSnapshot, now: datetime) -> bool:
    if job.status != JobStatus.SCHEDULED:
        return False
    scheduled_at = coerce_utc(job.scheduled_at)
    return scheduled_at is not None and scheduled_at <= now


def filter_due(jobs: Iterable[JobSnapshot], now: datetime) -> list[JobSnapshot]:
    reference = coerce_utc(now)
    assert reference is not None
    due = [job for job in jobs if is_due(job, reference)]
    # sorted() is stable, so equal keys keep store iteration order.
    return sorted(due, key=lambda job: job.scheduled_at)


class DueSelector:
    def __init__(self, job_service: JobService):
        self._job_service = job_service

    def select_due(self, now: datetime | None = None) -> list[JobSnapshot]:
        reference = now or datetime.now(tz=timezone.utc)
        return filter_due(self._job_service.scan_jobs(status=JobStatus.SCHEDULED), reference)
