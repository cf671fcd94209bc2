"""Celery tasks for metered video generation."""

from typing import Any
from uuid import UUID

from studio_ledger.db.session import get_session_context
from studio_ledger.domain.errors import LedgerError
from studio_ledger.logging import get_logger
from studio_ledger.services import generation
from studio_ledger.utils.async_utils import run_async
from studio_ledger.worker import celery_app

logger = get_logger(__name__)


@celery_app.task(bind=True, name="ledger.submit_segment")
def submit_segment_task(self: Any, user_id: str, segment_id: str) -> dict[str, Any]:
    """Reserve coins for a segment and submit it to the video provider.

    Args:
        user_id: Owner of the segment's script.
        segment_id: Segment UUID string.

    Returns:
        Dict with the segment status, or the error that stopped submission.
    """
    task_id = self.request.id
    logger.info("submit_segment_started", task_id=task_id, segment_id=segment_id)

    try:
        segment_uuid = UUID(segment_id)
    except ValueError as e:
        return {"success": False, "error": f"Invalid segment ID: {e}"}

    with get_session_context() as session:
        provider = generation.get_video_gen_provider()
        try:
            segment = run_async(
                generation.submit_segment(session, segment_uuid, user_id, provider)
            )
        except LedgerError as e:
            logger.warning(
                "submit_segment_failed",
                task_id=task_id,
                segment_id=segment_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return {"success": False, "segment_id": segment_id, "error": str(e)}

        return {
            "success": True,
            "segment_id": segment_id,
            "status": segment.status,
            "provider_task_id": segment.provider_task_id,
            "reserved_cost": segment.reserved_cost,
        }


@celery_app.task(bind=True, name="ledger.sync_active_jobs")
def sync_active_jobs_task(self: Any) -> dict[str, Any]:
    """Apply provider results to every in-flight job and continue segment chains."""
    with get_session_context() as session:
        visited = run_async(
            generation.sync_active_jobs(session, generation.get_video_gen_provider())
        )

    if visited["scripts"] or visited["rehearsal_owners"]:
        logger.info("active_jobs_synced", task_id=self.request.id, **visited)
    return {"success": True, **visited}


@celery_app.task(bind=True, name="ledger.sweep_stale_jobs")
def sweep_stale_jobs_task(self: Any) -> dict[str, Any]:
    """Release reservations of jobs stuck at the provider."""
    with get_session_context() as session:
        released = generation.sweep_stale_jobs(session)

    return {"success": True, "released": released}
