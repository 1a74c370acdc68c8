from __future__ import annotations

from datetime import datetime

from contentcron.content.service import ContentService
from contentcron.core.config import get_settings
from contentcron.db.session import get_session_factory
from contentcron.jobs.executor import Executor
from contentcron.jobs.protocols import Mailer
from contentcron.jobs.service import JobService
from contentcron.jobs.sync import SyncService
from contentcron.jobs.types import RunReport, SyncReport
from contentcron.mail.transport import ResendMailer, build_mailer


def build_executor(mailer: Mailer) -> Executor:
    settings = get_settings()
    session_factory = get_session_factory()
    content = ContentService(session_factory)
    return Executor(
        job_service=JobService(settings=settings, session_factory=session_factory),
        content_source=content,
        recipient_source=content,
        mailer=mailer,
        batch_size=settings.mail_batch_size,
    )


def sync_scheduled_content() -> SyncReport:
    session_factory = get_session_factory()
    job_service = JobService(settings=get_settings(), session_factory=session_factory)
    return SyncService(job_service=job_service, content_source=ContentService(session_factory)).sync()


def run_due_jobs_once(now: datetime | None = None) -> RunReport:
    mailer = build_mailer(get_settings())
    try:
        return build_executor(mailer).run_due(now)
    finally:
        if isinstance(mailer, ResendMailer):
            mailer.close()
