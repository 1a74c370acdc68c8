from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from contentcron.core.config import Settings
from contentcron.db.models import TERMINAL_JOB_STATUSES, CronJob, JobKind, JobStatus
from contentcron.jobs.types import JobClaim, JobMetrics, JobSnapshot


class JobNotFoundError(RuntimeError):
    pass


class InvalidJobStateError(RuntimeError):
    pass


class JobConflictError(RuntimeError):
    pass


@dataclass(frozen=True)
class JobListResult:
    items: list[JobSnapshot]
    next_cursor: str | None


ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.SCHEDULED: set(TERMINAL_JOB_STATUSES),
    **{status: set() for status in TERMINAL_JOB_STATUSES},
}


def coerce_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class JobService:
    """Durable store for scheduled content jobs.

    Every status write is guarded by ``status = 'scheduled'`` in the UPDATE
    itself, so a terminal job can never be rewritten regardless of what the
    caller read beforehand.
    """

    def __init__(self, settings: Settings, session_factory: sessionmaker[Session]):
        self._settings = settings
        self._session_factory = session_factory

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def _claim_delta(self) -> timedelta:
        return timedelta(seconds=self._settings.job_claim_ttl_seconds)

    def _enforce_transition(self, from_status: JobStatus, to_status: JobStatus) -> None:
        if to_status not in ALLOWED_TRANSITIONS[from_status]:
            raise InvalidJobStateError(f"Illegal transition: {from_status.value} -> {to_status.value}")

    def _has_live_claim(self, job: CronJob, now: datetime) -> bool:
        expires_at = coerce_utc(job.claim_expires_at)
        return job.claim_token is not None and expires_at is not None and expires_at > now

    def create_job(
        self,
        *,
        kind: JobKind,
        source_item_id: str,
        scheduled_at: datetime,
        snapshot: dict[str, Any] | None = None,
    ) -> JobSnapshot:
        normalized_item_id = source_item_id.strip()
        if not normalized_item_id:
            raise ValueError("source_item_id cannot be blank")

        now = self._now()
        with self._session_factory() as session:
            job = CronJob(
                id=str(uuid4()),
                kind=kind,
                source_item_id=normalized_item_id,
                scheduled_at=coerce_utc(scheduled_at),
                status=JobStatus.SCHEDULED,
                snapshot=dict(snapshot or {}),
                created_at=now,
                updated_at=now,
            )
            session.add(job)
            session.commit()
            session.refresh(job)
            return self._to_snapshot(job)

    def get_job(self, job_id: str) -> JobSnapshot:
        with self._session_factory() as session:
            job = session.get(CronJob, job_id)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}")
            return self._to_snapshot(job)

    def scan_jobs(self, *, kind: JobKind | None = None, status: JobStatus | None = None) -> list[JobSnapshot]:
        stmt = select(CronJob).order_by(CronJob.scheduled_at.asc(), CronJob.created_at.asc(), CronJob.id.asc())
        if kind is not None:
            stmt = stmt.where(CronJob.kind == kind)
        if status is not None:
            stmt = stmt.where(CronJob.status == status)
        with self._session_factory() as session:
            return [self._to_snapshot(row) for row in session.scalars(stmt).all()]

    def list_jobs(
        self,
        *,
        kind: JobKind | None = None,
        status: JobStatus | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> JobListResult:
        requested = self._settings.default_page_size if limit is None else limit
        bounded_limit = max(1, min(requested, self._settings.max_page_size))
        with self._session_factory() as session:
            stmt = select(CronJob).order_by(CronJob.scheduled_at.asc(), CronJob.id.asc()).limit(bounded_limit + 1)
            if kind is not None:
                stmt = stmt.where(CronJob.kind == kind)
            if status is not None:
                stmt = stmt.where(CronJob.status == status)
            if cursor:
                anchor_exists = session.scalar(select(CronJob.id).where(CronJob.id == cursor))
                if anchor_exists is None:
                    raise ValueError(f"Invalid pagination cursor: {cursor}")
                anchor_scheduled_at = select(CronJob.scheduled_at).where(CronJob.id == cursor).scalar_subquery()
                stmt = stmt.where(
                    or_(
                        CronJob.scheduled_at > anchor_scheduled_at,
                        and_(CronJob.scheduled_at == anchor_scheduled_at, CronJob.id > cursor),
                    )
                )
            rows = list(session.scalars(stmt).all())
            items = rows[:bounded_limit]
            next_cursor = items[-1].id if len(rows) > bounded_limit and items else None
            return JobListResult(items=[self._to_snapshot(row) for row in items], next_cursor=next_cursor)

    def reschedule_job(self, job_id: str, scheduled_at: datetime) -> JobSnapshot:
        new_scheduled_at = coerce_utc(scheduled_at)
        with self._session_factory() as session:
            job = session.get(CronJob, job_id)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}")
            if job.status != JobStatus.SCHEDULED:
                raise InvalidJobStateError(f"Job {job_id} is {job.status.value} and cannot be rescheduled")
            now = self._now()
            if self._has_live_claim(job, now):
                raise JobConflictError(f"Job {job_id} is currently being executed")
            job.scheduled_at = new_scheduled_at
            job.updated_at = now
            session.commit()
            session.refresh(job)
            return self._to_snapshot(job)

    def cancel_job(self, job_id: str) -> JobSnapshot:
        with self._session_factory() as session:
            job = session.get(CronJob, job_id)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}")
            self._enforce_transition(job.status, JobStatus.CANCELLED)
            now = self._now()
            if self._has_live_claim(job, now):
                raise JobConflictError(f"Job {job_id} is currently being executed")
            result = session.execute(
                update(CronJob)
                .where(CronJob.id == job_id, CronJob.status == JobStatus.SCHEDULED)
                .values(status=JobStatus.CANCELLED, claim_token=None, claim_expires_at=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                raise JobConflictError(f"Job {job_id} left the scheduled state concurrently")
            session.commit()
            refreshed = session.get(CronJob, job_id, populate_existing=True)
            assert refreshed is not None
            return self._to_snapshot(refreshed)

    def delete_job(self, job_id: str) -> None:
        with self._session_factory() as session:
            result = session.execute(delete(CronJob).where(CronJob.id == job_id))
            if result.rowcount != 1:
                session.rollback()
                raise JobNotFoundError(f"Job not found: {job_id}")
            session.commit()

    def claim_job(self, job_id: str, *, now: datetime | None = None) -> JobClaim | None:
        """Take the execution lease on a scheduled job.

        Returns ``None`` when the job is no longer scheduled or another pass
        holds a live lease on it.
        """
        claimed_at = coerce_utc(now) or self._now()
        token = str(uuid4())
        expires_at = claimed_at + self._claim_delta()
        with self._session_factory() as session:
            result = session.execute(
                update(CronJob)
                .where(
                    CronJob.id == job_id,
                    CronJob.status == JobStatus.SCHEDULED,
                    or_(
                        CronJob.claim_token.is_(None),
                        CronJob.claim_expires_at.is_(None),
                        CronJob.claim_expires_at <= claimed_at,
                    ),
                )
                .values(claim_token=token, claim_expires_at=expires_at, updated_at=self._now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                return None
            session.commit()
        return JobClaim(job_id=job_id, token=token, expires_at=expires_at)

    def renew_claim(self, claim: JobClaim, *, now: datetime | None = None) -> JobClaim | None:
        """Push the lease forward while its holder is still working.

        Returns ``None`` once the job has left the scheduled state or another
        pass has taken the lease over.
        """
        renewed_at = coerce_utc(now) or self._now()
        expires_at = renewed_at + self._claim_delta()
        with self._session_factory() as session:
            result = session.execute(
                update(CronJob)
                .where(
                    CronJob.id == claim.job_id,
                    CronJob.status == JobStatus.SCHEDULED,
                    CronJob.claim_token == claim.token,
                )
                .values(claim_expires_at=expires_at, updated_at=self._now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                return None
            session.commit()
        return JobClaim(job_id=claim.job_id, token=claim.token, expires_at=expires_at)

    def complete_job(self, claim: JobClaim, *, now: datetime | None = None) -> JobSnapshot:
        return self._finish(claim, JobStatus.COMPLETED, error=None, now=now)

    def fail_job(self, claim: JobClaim, error: str, *, now: datetime | None = None) -> JobSnapshot:
        return self._finish(claim, JobStatus.FAILED, error=error, now=now)

    def _finish(self, claim: JobClaim, target: JobStatus, *, error: str | None, now: datetime | None) -> JobSnapshot:
        self._enforce_transition(JobStatus.SCHEDULED, target)
        run_at = coerce_utc(now) or self._now()
        with self._session_factory() as session:
            result = session.execute(
                update(CronJob)
                .where(
                    CronJob.id == claim.job_id,
                    CronJob.status == JobStatus.SCHEDULED,
                    CronJob.claim_token == claim.token,
                )
                .values(
                    status=target,
                    error=error,
                    last_run_at=run_at,
                    claim_token=None,
                    claim_expires_at=None,
                    updated_at=self._now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                raise JobConflictError(f"Claim on job {claim.job_id} was lost before write-back")
            session.commit()
            job = session.get(CronJob, claim.job_id, populate_existing=True)
            if job is None:
                raise JobNotFoundError(f"Job not found: {claim.job_id}")
            return self._to_snapshot(job)

    def get_metrics(self) -> JobMetrics:
        with self._session_factory() as session:
            counts = {
                status: int(count)
                for status, count in session.execute(
                    select(CronJob.status, func.count(CronJob.id)).group_by(CronJob.status)
                ).all()
            }
            next_scheduled_at = session.scalar(
                select(func.min(CronJob.scheduled_at)).where(CronJob.status == JobStatus.SCHEDULED)
            )
        return JobMetrics(
            generated_at=self._now(),
            scheduled=counts.get(JobStatus.SCHEDULED, 0),
            completed=counts.get(JobStatus.COMPLETED, 0),
            failed=counts.get(JobStatus.FAILED, 0),
            cancelled=counts.get(JobStatus.CANCELLED, 0),
            next_scheduled_at=coerce_utc(next_scheduled_at),
        )

    def _to_snapshot(self, job: CronJob) -> JobSnapshot:
        scheduled_at = coerce_utc(job.scheduled_at)
        created_at = coerce_utc(job.created_at)
        updated_at = coerce_utc(job.updated_at)
        assert scheduled_at is not None and created_at is not None and updated_at is not None
        return JobSnapshot(
            id=job.id,
            kind=job.kind,
            source_item_id=job.source_item_id,
            scheduled_at=scheduled_at,
            status=job.status,
            snapshot=dict(job.snapshot or {}),
            last_run_at=coerce_utc(job.last_run_at),
            error=job.error,
            created_at=created_at,
            updated_at=updated_at,
        )


def snapshot_to_dict(snapshot: JobSnapshot) -> dict[str, Any]:
    return {
        "id": snapshot.id,
        "kind": snapshot.kind.value,
        "source_item_id": snapshot.source_item_id,
        "scheduled_at": snapshot.scheduled_at,
        "status": snapshot.status.value,
        "snapshot": snapshot.snapshot,
        "last_run_at": snapshot.last_run_at,
        "error": snapshot.error,
        "created_at": snapshot.created_at,
        "updated_at": snapshot.updated_at,
    }


def metrics_to_dict(metrics: JobMetrics) -> dict[str, Any]:
    return {
        "generated_at": metrics.generated_at,
        "scheduled": metrics.scheduled,
        "completed": metrics.completed,
        "failed": metrics.failed,
        "cancelled": metrics.cancelled,
        "next_scheduled_at": metrics.next_scheduled_at,
    }
