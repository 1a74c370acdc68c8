from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterator

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse

from contentcron.api.schemas.cron import CronExecuteResponse, CronFailureResponse
from contentcron.core.auth import CronAuthorizationError, authorize_cron_request
from contentcron.core.config import get_settings
from contentcron.jobs.executor import ExecutionAbortedError, Executor, run_report_to_dict
from contentcron.mail.transport import ResendMailer, build_mailer
from contentcron.worker.pipeline import build_executor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def get_executor() -> Iterator[Executor]:
    mailer = build_mailer(get_settings())
    try:
        yield build_executor(mailer)
    finally:
        if isinstance(mailer, ResendMailer):
            mailer.close()


def require_cron_token(authorization: str | None = Header(default=None)) -> None:
    try:
        authorize_cron_request(get_settings(), authorization)
    except CronAuthorizationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


@router.api_route(
    "/execute",
    methods=["GET", "POST"],
    response_model=CronExecuteResponse,
    responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": CronFailureResponse}},
    dependencies=[Depends(require_cron_token)],
)
def execute_due_jobs(executor: Executor = Depends(get_executor)) -> CronExecuteResponse | JSONResponse:
    try:
        report = executor.run_due(datetime.now(tz=timezone.utc))
    except ExecutionAbortedError as exc:
        logger.error("Cron pass aborted: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=CronFailureResponse(error="Failed to execute scheduled jobs", message=str(exc)).model_dump(),
        )

    payload = run_report_to_dict(report)
    return CronExecuteResponse.model_validate(
        {
            **payload,
            "success": True,
            "message": f"Processed {report.processed} scheduled job(s)",
            "timestamp": datetime.now(tz=timezone.utc),
        }
    )
