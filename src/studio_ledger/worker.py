"""Celery worker: ledger submission, provider sync and stale-job sweep."""

from typing import Any

from celery import Celery
from celery.signals import task_postrun, task_prerun

from studio_ledger.config import settings
from studio_ledger.logging import bind_context, clear_context, setup_logging

setup_logging("worker")

celery_app = Celery(
    "studio_ledger",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=270,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    # Result backend
    result_expires=86400,  # 24 hours
    # Task routing
    task_routes={
        "ledger.submit_segment": {"queue": "high"},
        "ledger.sync_active_jobs": {"queue": "default"},
        "ledger.sweep_stale_jobs": {"queue": "low"},
    },
    # Beat scheduler (for periodic tasks)
    beat_schedule={
        # Provider status sync
        "sync-active-jobs": {
            "task": "ledger.sync_active_jobs",
            "schedule": settings.poll_interval_seconds,
            "options": {"queue": "default"},
        },
        # Release jobs the provider never finished
        "sweep-stale-jobs-5m": {
            "task": "ledger.sweep_stale_jobs",
            "schedule": 300.0,  # 5 minutes
            "options": {"queue": "low"},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["studio_ledger.jobs"], related_name="ledger_tasks")


@task_prerun.connect
def bind_task_context(task_id: str | None = None, task: Any = None, **_: Any) -> None:
    """Tag ledger events logged by a task with its id and name."""
    clear_context()
    bind_context(task_id=task_id, task_name=getattr(task, "name", None))


@task_postrun.connect
def clear_task_context(**_: Any) -> None:
    clear_context()
