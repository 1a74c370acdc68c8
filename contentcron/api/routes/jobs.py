from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from contentcron.api.schemas.jobs import (
    JobListResponse,
    JobMetricsResponse,
    JobResponse,
    RescheduleJobRequest,
    SyncResponse,
)
from contentcron.content.service import ContentService
from contentcron.core.config import get_settings
from contentcron.db.models import JobKind, JobStatus
from contentcron.db.session import get_session_factory
from contentcron.jobs.service import (
    InvalidJobStateError,
    JobConflictError,
    JobNotFoundError,
    JobService,
    metrics_to_dict,
    snapshot_to_dict,
)
from contentcron.jobs.sync import SyncService, sync_report_to_dict

router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_job_service() -> JobService:
    return JobService(settings=get_settings(), session_factory=get_session_factory())


def get_sync_service(job_service: JobService = Depends(get_job_service)) -> SyncService:
    return SyncService(job_service=job_service, content_source=ContentService(get_session_factory()))


@router.get("", response_model=JobListResponse)
def list_jobs(
    kind: JobKind | None = None,
    job_status: JobStatus | None = Query(default=None, alias="status"),
    limit: int | None = Query(default=None, ge=1),
    cursor: str | None = None,
    service: JobService = Depends(get_job_service),
) -> JobListResponse:
    try:
        result = service.list_jobs(kind=kind, status=job_status, limit=limit, cursor=cursor)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return JobListResponse(
        items=[JobResponse.model_validate(snapshot_to_dict(item)) for item in result.items],
        next_cursor=result.next_cursor,
    )


@router.get("/metrics", response_model=JobMetricsResponse)
def get_job_metrics(service: JobService = Depends(get_job_service)) -> JobMetricsResponse:
    return JobMetricsResponse.model_validate(metrics_to_dict(service.get_metrics()))


@router.post("/sync", response_model=SyncResponse)
def sync_scheduled_content(service: SyncService = Depends(get_sync_service)) -> SyncResponse:
    report = service.sync()
    return SyncResponse.model_validate(sync_report_to_dict(report))


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: str, service: JobService = Depends(get_job_service)) -> JobResponse:
    try:
        job = service.get_job(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobResponse.model_validate(snapshot_to_dict(job))


@router.post("/{job_id}/reschedule", response_model=JobResponse)
def reschedule_job(
    job_id: str,
    request: RescheduleJobRequest,
    service: JobService = Depends(get_job_service),
) -> JobResponse:
    try:
        job = service.reschedule_job(job_id, request.scheduled_at)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (InvalidJobStateError, JobConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return JobResponse.model_validate(snapshot_to_dict(job))


@router.post("/{job_id}/cancel", response_model=JobResponse)
def cancel_job(job_id: str, service: JobService = Depends(get_job_service)) -> JobResponse:
    try:
        job = service.cancel_job(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (InvalidJobStateError, JobConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return JobResponse.model_validate(snapshot_to_dict(job))


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_job(job_id: str, service: JobService = Depends(get_job_service)) -> Response:
    try:
        service.delete_job(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
