from contentcron.worker.pipeline import build_executor, run_due_jobs_once, sync_scheduled_content

__all__ = [
    "build_executor",
    "run_due_jobs_once",
    "sync_scheduled_content",
]
