from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from contentcron.content.types import ContentItem
from contentcron.db.models import JobKind
from contentcron.jobs.protocols import ContentSource
from contentcron.jobs.service import JobService, coerce_utc
from contentcron.jobs.types import SyncItemError, SyncReport

logger = logging.getLogger(__name__)

SCHEDULED_CONTENT_STATUS = "scheduled"

_SNAPSHOT_FIELDS: dict[JobKind, tuple[str, ...]] = {
    JobKind.BLOG: ("title", "slug"),
    JobKind.EMAIL: ("subject",),
}


def parse_scheduled_at(value: datetime | str | None) -> datetime:
    if isinstance(value, datetime):
        coerced = coerce_utc(value)
        assert coerced is not None
        return coerced
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise ValueError(f"Malformed scheduled timestamp: {value!r}") from exc
        coerced = coerce_utc(parsed)
        assert coerced is not None
        return coerced
    raise ValueError(f"Malformed scheduled timestamp: {value!r}")


def is_eligible(item: ContentItem) -> bool:
    return item.status == SCHEDULED_CONTENT_STATUS and item.scheduled_at not in (None, "")


def build_snapshot(item: ContentItem) -> dict[str, Any]:
    snapshot = {name: item.metadata.get(name) for name in _SNAPSHOT_FIELDS[item.kind]}
    snapshot["status"] = item.status
    return snapshot


class SyncService:
    """Mirror scheduled content items into cron jobs, at most one job per item."""

    def __init__(self, job_service: JobService, content_source: ContentSource):
        self._job_service = job_service
        self._content_source = content_source

    def sync(self) -> SyncReport:
        report = SyncReport()
        for kind in JobKind:
            eligible = [item for item in self._content_source.list_items(kind) if is_eligible(item)]
            for item in eligible:
                try:
                    if self._sync_item(kind, item):
                        report.created[kind] += 1
                except Exception as exc:  # noqa: BLE001 - per-item failures are reported, never fatal
                    logger.warning("Failed to create %s job for item %s: %s", kind.value, item.id, exc)
                    report.errors.append(SyncItemError(item_id=item.id, kind=kind, message=str(exc)))

        logger.info(
            "Sync created %d job(s) (%s), %d error(s)",
            report.total_created,
            ", ".join(f"{kind.value}={count}" for kind, count in report.created.items()),
            len(report.errors),
        )
        return report

    def _sync_item(self, kind: JobKind, item: ContentItem) -> bool:
        existing = self._job_service.scan_jobs(kind=kind)
        if any(job.source_item_id == item.id for job in existing):
            return False

        self._job_service.create_job(
            kind=kind,
            source_item_id=item.id,
            scheduled_at=parse_scheduled_at(item.scheduled_at),
            snapshot=build_snapshot(item),
        )
        return True


def sync_report_to_dict(report: SyncReport) -> dict[str, Any]:
    return {
        "created": {kind.value: count for kind, count in report.created.items()},
        "errors": [
            {"item_id": error.item_id, "kind": error.kind.value, "message": error.message}
            for error in report.errors
        ],
    }
