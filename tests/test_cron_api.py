from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import contentcron.db.session as db_session_module
from fastapi.testclient import TestClient

from contentcron.api.app import create_app
from contentcron.api.routes.cron import get_executor
from contentcron.core.config import get_settings
from contentcron.db.init_db import initialize_database
from contentcron.db.models import BlogPost, BlogStatus, CampaignStatus, EmailCampaign, JobKind
from contentcron.jobs.executor import ExecutionAbortedError
from contentcron.jobs.service import JobService


def _prepare_env(tmp_path: Path, *, secret: str = "") -> JobService:
    state_root = tmp_path / "state"
    state_root.mkdir(parents=True, exist_ok=True)

    os.environ["CONTENTCRON_STATE_ROOT"] = state_root.as_posix()
    os.environ["CONTENTCRON_CRON_SECRET_TOKEN"] = secret
    os.environ["CONTENTCRON_MAIL_API_KEY"] = ""
    os.environ["CONTENTCRON_JOB_CLAIM_TTL_SECONDS"] = "300"
    os.environ["CONTENTCRON_MAIL_SEND_TIMEOUT_SECONDS"] = "0.5"

    get_settings.cache_clear()
    db_session_module.reset_session_state()
    initialize_database()
    return JobService(get_settings(), db_session_module.get_session_factory())


def _seed(*rows: object) -> None:
    with db_session_module.get_session_factory()() as session:
        session.add_all(rows)
        session.commit()


class AbortingExecutor:
    def run_due(self, now=None):
        raise ExecutionAbortedError("job store unreachable")


def test_execute_requires_bearer_token_when_secret_is_configured(tmp_path: Path) -> None:
    _prepare_env(tmp_path, secret="s3cret")
    client = TestClient(create_app())

    missing = client.post("/api/v1/cron/execute")
    assert missing.status_code == 401
    assert missing.json()["detail"] == "Unauthorized"
    assert missing.headers["www-authenticate"] == "Bearer"

    wrong = client.post("/api/v1/cron/execute", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 401

    not_bearer = client.get("/api/v1/cron/execute", headers={"Authorization": "s3cret"})
    assert not_bearer.status_code == 401

    ok = client.post("/api/v1/cron/execute", headers={"Authorization": "Bearer s3cret"})
    assert ok.status_code == 200
    assert ok.json()["success"] is True


def test_execute_is_open_when_no_secret_is_configured(tmp_path: Path) -> None:
    _prepare_env(tmp_path)
    client = TestClient(create_app())

    for method in ("GET", "POST"):
        response = client.request(method, "/api/v1/cron/execute")
        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 0
        assert body["errors"] == []
        assert body["message"] == "Processed 0 scheduled job(s)"
        assert "timestamp" in body


def test_execute_rejects_other_methods(tmp_path: Path) -> None:
    _prepare_env(tmp_path, secret="s3cret")
    client = TestClient(create_app())

    for method in ("PUT", "DELETE", "PATCH"):
        response = client.request(method, "/api/v1/cron/execute", headers={"Authorization": "Bearer s3cret"})
        assert response.status_code == 405


def test_execute_reports_per_job_failures_with_200(tmp_path: Path) -> None:
    job_service = _prepare_env(tmp_path)
    now = datetime.now(tz=timezone.utc)
    _seed(
        BlogPost(id="post-1", title="Hello", slug="hello", status=BlogStatus.SCHEDULED, scheduled_at=now),
        EmailCampaign(id="mail-1", subject="S", content="B", status=CampaignStatus.SCHEDULED, scheduled_at=now),
    )
    blog = job_service.create_job(kind=JobKind.BLOG, source_item_id="post-1", scheduled_at=now - timedelta(minutes=2))
    email = job_service.create_job(kind=JobKind.EMAIL, source_item_id="mail-1", scheduled_at=now - timedelta(minutes=1))
    client = TestClient(create_app())

    response = client.post("/api/v1/cron/execute")

    assert response.status_code == 200
    body = response.json()
    assert (body["processed"], body["succeeded"], body["failed"], body["skipped"]) == (2, 1, 1, 0)
    assert body["errors"] == [{"job_id": email.id, "kind": "email", "message": "no active recipients"}]

    assert client.get(f"/api/v1/jobs/{blog.id}").json()["status"] == "completed"
    failed = client.get(f"/api/v1/jobs/{email.id}").json()
    assert failed["status"] == "failed"
    assert failed["error"] == "no active recipients"


def test_execute_returns_500_when_the_pass_aborts(tmp_path: Path) -> None:
    _prepare_env(tmp_path)
    app = create_app()
    app.dependency_overrides[get_executor] = lambda: AbortingExecutor()
    client = TestClient(app)

    response = client.post("/api/v1/cron/execute")

    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to execute scheduled jobs",
        "message": "job store unreachable",
    }


def test_operator_job_routes(tmp_path: Path) -> None:
    _prepare_env(tmp_path)
    when = datetime.now(tz=timezone.utc) + timedelta(days=1)
    _seed(
        BlogPost(id="post-1", title="Hello", slug="hello", status=BlogStatus.SCHEDULED, scheduled_at=when),
        EmailCampaign(id="mail-1", subject="S", content="B", status=CampaignStatus.SCHEDULED, scheduled_at=when),
    )
    client = TestClient(create_app())

    synced = client.post("/api/v1/jobs/sync")
    assert synced.status_code == 200
    assert synced.json() == {"created": {"blog": 1, "email": 1}, "errors": []}
    assert client.post("/api/v1/jobs/sync").json()["created"] == {"blog": 0, "email": 0}

    listing = client.get("/api/v1/jobs", params={"kind": "blog"})
    assert listing.status_code == 200
    (blog_job,) = listing.json()["items"]
    assert blog_job["source_item_id"] == "post-1"
    assert blog_job["snapshot"] == {"title": "Hello", "slug": "hello", "status": "scheduled"}

    moved = client.post(
        f"/api/v1/jobs/{blog_job['id']}/reschedule",
        json={"scheduled_at": "2031-03-04T05:06:07+00:00"},
    )
    assert moved.status_code == 200
    assert moved.json()["status"] == "scheduled"
    assert moved.json()["scheduled_at"].startswith("2031-03-04T05:06:07")

    naive = client.post(f"/api/v1/jobs/{blog_job['id']}/reschedule", json={"scheduled_at": "2031-03-04T05:06:07"})
    assert naive.status_code == 422

    cancelled = client.post(f"/api/v1/jobs/{blog_job['id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert client.post(f"/api/v1/jobs/{blog_job['id']}/cancel").status_code == 409
    assert (
        client.post(
            f"/api/v1/jobs/{blog_job['id']}/reschedule",
            json={"scheduled_at": "2031-03-04T05:06:07+00:00"},
        ).status_code
        == 409
    )

    metrics = client.get("/api/v1/jobs/metrics").json()
    assert metrics["scheduled"] == 1
    assert metrics["cancelled"] == 1

    assert client.get("/api/v1/jobs", params={"status": "cancelled"}).json()["items"][0]["id"] == blog_job["id"]
    assert client.get("/api/v1/jobs", params={"cursor": "missing"}).status_code == 422

    assert client.delete(f"/api/v1/jobs/{blog_job['id']}").status_code == 204
    assert client.get(f"/api/v1/jobs/{blog_job['id']}").status_code == 404
    assert client.delete(f"/api/v1/jobs/{blog_job['id']}").status_code == 404
    assert client.post("/api/v1/jobs/missing/cancel").status_code == 404


def test_health_reports_auth_mode(tmp_path: Path) -> None:
    _prepare_env(tmp_path, secret="s3cret")
    client = TestClient(create_app())

    body = client.get("/api/v1/health").json()

    assert body["status"] == "ok"
    assert body["cron_auth_required"] is True
