from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from contentcron.content.service import ContentUnavailableError
from contentcron.db.models import JobKind
from contentcron.jobs.due import DueSelector
from contentcron.jobs.protocols import ContentSource, Mailer, RecipientSource
from contentcron.jobs.service import JobConflictError, JobService, coerce_utc
from contentcron.jobs.types import JobClaim, JobRunError, JobSnapshot, RunReport
from contentcron.mail.batching import deliver_in_batches

logger = logging.getLogger(__name__)

INCOMPLETE_CAMPAIGN_MESSAGE = "incomplete campaign data"
NO_RECIPIENTS_MESSAGE = "no active recipients"
NOTHING_DELIVERED_MESSAGE = "failed to deliver to any recipient"

INFRASTRUCTURE_ERRORS: tuple[type[BaseException], ...] = (SQLAlchemyError, ContentUnavailableError)


class JobExecutionError(RuntimeError):
    pass


class ExecutionAbortedError(RuntimeError):
    pass


class ClaimLostError(RuntimeError):
    pass


class Executor:
    """Runs one pass over the jobs that are due.

    Jobs are handled one after another in ``scheduled_at`` order and each
    outcome is written back before the next job starts. Per-job failures are
    recorded on the job and in the report; store or content-source outages
    abort the pass with ``ExecutionAbortedError``.
    """

    def __init__(
        self,
        *,
        job_service: JobService,
        content_source: ContentSource,
        recipient_source: RecipientSource,
        mailer: Mailer,
        batch_size: int = 50,
        selector: DueSelector | None = None,
    ):
        self._job_service = job_service
        self._content_source = content_source
        self._recipient_source = recipient_source
        self._mailer = mailer
        self._batch_size = batch_size
        self._selector = selector or DueSelector(job_service)
        self._handlers: dict[JobKind, Callable[[JobSnapshot, JobClaim], None]] = {
            JobKind.BLOG: self._publish_blog,
            JobKind.EMAIL: self._deliver_campaign,
        }
        missing = set(JobKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler registered for job kinds: {sorted(kind.value for kind in missing)}")

    def run_due(self, now: datetime | None = None) -> RunReport:
        pass_time = coerce_utc(now) or datetime.now(tz=timezone.utc)
        try:
            due_jobs = self._selector.select_due(pass_time)
        except INFRASTRUCTURE_ERRORS as exc:
            raise ExecutionAbortedError(f"Could not load due jobs: {exc}") from exc

        report = RunReport()
        for job in due_jobs:
            self._run_one(job, pass_time, report)

        if report.processed or report.skipped:
            logger.info(
                "Cron pass processed %d job(s): %d succeeded, %d failed, %d skipped",
                report.processed,
                report.succeeded,
                report.failed,
                report.skipped,
            )
        else:
            logger.debug("Cron pass found no due jobs")
        return report

    def _run_one(self, job: JobSnapshot, pass_time: datetime, report: RunReport) -> None:
        try:
            claim = self._job_service.claim_job(job.id)
        except INFRASTRUCTURE_ERRORS as exc:
            raise ExecutionAbortedError(f"Could not claim job {job.id}: {exc}") from exc
        if claim is None:
            logger.info("Job %s is already claimed or no longer scheduled; skipping", job.id)
            report.skipped += 1
            return

        handler = self._handlers[job.kind]
        try:
            handler(job, claim)
        except INFRASTRUCTURE_ERRORS as exc:
            raise ExecutionAbortedError(f"Job {job.id} aborted the pass: {exc}") from exc
        except ClaimLostError as exc:
            logger.warning("Job %s stopped mid-run: %s", job.id, exc)
            report.skipped += 1
            return
        except Exception as exc:  # noqa: BLE001 - recorded on the job, pass continues
            message = str(exc) or type(exc).__name__
            logger.exception("Job %s (%s, item %s) failed: %s", job.id, job.kind.value, job.source_item_id, message)
            if self._write_back(claim, pass_time, report, error=message):
                report.processed += 1
                report.failed += 1
                report.errors.append(JobRunError(job_id=job.id, kind=job.kind, message=message))
            return

        if self._write_back(claim, pass_time, report, error=None):
            report.processed += 1
            report.succeeded += 1

    def _write_back(self, claim: JobClaim, pass_time: datetime, report: RunReport, *, error: str | None) -> bool:
        try:
            if error is None:
                self._job_service.complete_job(claim, now=pass_time)
            else:
                self._job_service.fail_job(claim, error, now=pass_time)
        except JobConflictError as exc:
            logger.warning("Outcome of job %s not recorded: %s", claim.job_id, exc)
            report.skipped += 1
            return False
        except INFRASTRUCTURE_ERRORS as exc:
            raise ExecutionAbortedError(f"Could not record outcome of job {claim.job_id}: {exc}") from exc
        return True

    def _publish_blog(self, job: JobSnapshot, _claim: JobClaim) -> None:
        self._content_source.publish_item(job.source_item_id)
        logger.info("Published blog post %s for job %s", job.source_item_id, job.id)

    def _deliver_campaign(self, job: JobSnapshot, claim: JobClaim) -> None:
        campaign = self._content_source.get_campaign(job.source_item_id)
        if not campaign.subject or not campaign.body:
            raise JobExecutionError(INCOMPLETE_CAMPAIGN_MESSAGE)

        recipients = self._recipient_source.active_recipients()
        if not recipients:
            raise JobExecutionError(NO_RECIPIENTS_MESSAGE)

        delivery = deliver_in_batches(
            self._mailer,
            recipients,
            subject=campaign.subject,
            body=campaign.body,
            batch_size=self._batch_size,
            before_batch=lambda _index: self._renew_claim(claim),
        )
        if delivery.failed_batches:
            logger.warning(
                "Campaign %s: %d of %d batch(es) failed",
                job.source_item_id,
                len(delivery.failed_batches),
                len(delivery.batches),
            )
        if delivery.success_count == 0:
            raise JobExecutionError(NOTHING_DELIVERED_MESSAGE)

        self._content_source.mark_campaign_delivered(job.source_item_id, delivery.success_count)
        logger.info(
            "Sent campaign %s to %d of %d recipient(s)",
            job.source_item_id,
            delivery.success_count,
            delivery.attempted,
        )

    def _renew_claim(self, claim: JobClaim) -> None:
        if self._job_service.renew_claim(claim) is None:
            raise ClaimLostError(f"Lease on job {claim.job_id} was lost; remaining batches not sent")


def run_report_to_dict(report: RunReport) -> dict[str, Any]:
    return {
        "processed": report.processed,
        "succeeded": report.succeeded,
        "failed": report.failed,
        "skipped": report.skipped,
        "errors": [
            {"job_id": error.job_id, "kind": error.kind.value, "message": error.message}
            for error in report.errors
        ],
    }
