"""Celery job definitions."""

from studio_ledger.jobs.ledger_tasks import (
    submit_segment_task,
    sweep_stale_jobs_task,
    sync_active_jobs_task,
)

__all__ = [
    "submit_segment_task",
    "sweep_stale_jobs_task",
    "sync_active_jobs_task",
]
