from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Sequence

import contentcron.db.session as db_session_module
from contentcron.content.service import ContentService
from contentcron.content.types import Campaign, ContentItem
from contentcron.core.config import get_settings
from contentcron.db.init_db import initialize_database
from contentcron.db.models import (
    BlogPost,
    BlogStatus,
    CampaignStatus,
    EmailCampaign,
    JobKind,
    JobStatus,
)
from contentcron.jobs.service import JobService
from contentcron.jobs.sync import SyncService, parse_scheduled_at, sync_report_to_dict


def make_job_service(tmp_path: Path) -> JobService:
    state_root = tmp_path / "state"
    state_root.mkdir(parents=True, exist_ok=True)

    os.environ["CONTENTCRON_STATE_ROOT"] = state_root.as_posix()
    os.environ["CONTENTCRON_CRON_SECRET_TOKEN"] = ""
    os.environ["CONTENTCRON_MAIL_API_KEY"] = ""
    os.environ["CONTENTCRON_JOB_CLAIM_TTL_SECONDS"] = "300"
    os.environ["CONTENTCRON_MAIL_SEND_TIMEOUT_SECONDS"] = "0.5"

    get_settings.cache_clear()
    db_session_module.reset_session_state()
    initialize_database()
    return JobService(get_settings(), db_session_module.get_session_factory())


def seed_content(*, blogs: Sequence[BlogPost] = (), campaigns: Sequence[EmailCampaign] = ()) -> None:
    session_factory = db_session_module.get_session_factory()
    with session_factory() as session:
        session.add_all([*blogs, *campaigns])
        session.commit()


class StaticContentSource:
    def __init__(self, items: dict[JobKind, list[ContentItem]]):
        self._items = items

    def list_items(self, kind: JobKind) -> list[ContentItem]:
        return list(self._items.get(kind, []))

    def publish_item(self, item_id: str) -> None:
        raise AssertionError("sync must not publish")

    def get_campaign(self, item_id: str) -> Campaign:
        raise AssertionError("sync must not read campaigns")

    def mark_campaign_delivered(self, item_id: str, recipient_count: int) -> None:
        raise AssertionError("sync must not deliver")


def test_sync_creates_one_job_per_eligible_item_and_is_idempotent(tmp_path: Path) -> None:
    job_service = make_job_service(tmp_path)
    when = datetime.now(tz=timezone.utc) + timedelta(days=1)
    seed_content(
        blogs=[
            BlogPost(id="post-1", title="First", slug="first", status=BlogStatus.SCHEDULED, scheduled_at=when),
            BlogPost(id="post-2", title="Draft", slug="draft", status=BlogStatus.DRAFT, scheduled_at=when),
            BlogPost(id="post-3", title="No date", slug="no-date", status=BlogStatus.SCHEDULED, scheduled_at=None),
        ],
        campaigns=[
            EmailCampaign(id="mail-1", subject="Weekly", content="<p>hi</p>", status=CampaignStatus.SCHEDULED, scheduled_at=when),
            EmailCampaign(id="mail-2", subject="Old", content="<p>x</p>", status=CampaignStatus.SENT, scheduled_at=when),
        ],
    )
    sync = SyncService(job_service, ContentService(db_session_module.get_session_factory()))

    first = sync.sync()
    assert first.created == {JobKind.BLOG: 1, JobKind.EMAIL: 1}
    assert first.errors == []

    second = sync.sync()
    assert second.created == {JobKind.BLOG: 0, JobKind.EMAIL: 0}
    assert second.errors == []

    jobs = job_service.scan_jobs()
    assert sorted((job.kind, job.source_item_id) for job in jobs) == [(JobKind.BLOG, "post-1"), (JobKind.EMAIL, "mail-1")]
    assert all(job.status == JobStatus.SCHEDULED for job in jobs)
    assert all(job.scheduled_at == when for job in jobs)


def test_sync_captures_display_snapshot(tmp_path: Path) -> None:
    job_service = make_job_service(tmp_path)
    when = datetime.now(tz=timezone.utc) + timedelta(hours=3)
    seed_content(
        blogs=[BlogPost(id="post-1", title="Launch", slug="launch", status=BlogStatus.SCHEDULED, scheduled_at=when)],
        campaigns=[EmailCampaign(id="mail-1", subject="Launch mail", content="body", status=CampaignStatus.SCHEDULED, scheduled_at=when)],
    )

    SyncService(job_service, ContentService(db_session_module.get_session_factory())).sync()

    by_kind = {job.kind: job for job in job_service.scan_jobs()}
    assert by_kind[JobKind.BLOG].snapshot == {"title": "Launch", "slug": "launch", "status": "scheduled"}
    assert by_kind[JobKind.EMAIL].snapshot == {"subject": "Launch mail", "status": "scheduled"}


def test_sync_does_not_recreate_jobs_that_reached_a_terminal_state(tmp_path: Path) -> None:
    job_service = make_job_service(tmp_path)
    when = datetime.now(tz=timezone.utc) + timedelta(days=2)
    seed_content(blogs=[BlogPost(id="post-1", title="T", slug="t", status=BlogStatus.SCHEDULED, scheduled_at=when)])
    sync = SyncService(job_service, ContentService(db_session_module.get_session_factory()))

    sync.sync()
    (job,) = job_service.scan_jobs()
    job_service.cancel_job(job.id)

    report = sync.sync()
    assert report.created[JobKind.BLOG] == 0
    assert len(job_service.scan_jobs()) == 1


def test_sync_recreates_job_after_operator_deletes_it(tmp_path: Path) -> None:
    job_service = make_job_service(tmp_path)
    when = datetime.now(tz=timezone.utc) + timedelta(days=2)
    seed_content(blogs=[BlogPost(id="post-1", title="T", slug="t", status=BlogStatus.SCHEDULED, scheduled_at=when)])
    sync = SyncService(job_service, ContentService(db_session_module.get_session_factory()))

    sync.sync()
    (job,) = job_service.scan_jobs()
    job_service.delete_job(job.id)

    assert sync.sync().created[JobKind.BLOG] == 1


def test_sync_reports_bad_items_and_keeps_going(tmp_path: Path) -> None:
    job_service = make_job_service(tmp_path)
    source = StaticContentSource(
        {
            JobKind.BLOG: [
                ContentItem(id="bad", kind=JobKind.BLOG, status="scheduled", scheduled_at="next tuesday"),
                ContentItem(id="good", kind=JobKind.BLOG, status="scheduled", scheduled_at="2030-01-01T09:00:00Z"),
            ],
            JobKind.EMAIL: [
                ContentItem(id="  ", kind=JobKind.EMAIL, status="scheduled", scheduled_at="2030-01-01T09:00:00+00:00"),
            ],
        }
    )

    report = SyncService(job_service, source).sync()

    assert report.created == {JobKind.BLOG: 1, JobKind.EMAIL: 0}
    assert [(error.item_id, error.kind) for error in report.errors] == [("bad", JobKind.BLOG), ("  ", JobKind.EMAIL)]
    assert "Malformed scheduled timestamp" in report.errors[0].message

    (job,) = job_service.scan_jobs()
    assert job.source_item_id == "good"
    assert job.scheduled_at == datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)

    payload = sync_report_to_dict(report)
    assert payload["created"] == {"blog": 1, "email": 0}
    assert payload["errors"][0]["item_id"] == "bad"


def test_parse_scheduled_at_accepts_naive_datetimes_as_utc() -> None:
    assert parse_scheduled_at(datetime(2030, 1, 1, 9, 0)) == datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)

    try:
        parse_scheduled_at(1700000000)  # type: ignore[arg-type]
    except ValueError:
        pass
    else:
        raise AssertionError("expected ValueError for a non-timestamp value")
