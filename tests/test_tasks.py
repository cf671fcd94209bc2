"""Tests for ledger Celery tasks (run eagerly, no broker required)."""

from sqlalchemy.orm import Session

from studio_ledger.jobs.ledger_tasks import (
    submit_segment_task,
    sweep_stale_jobs_task,
    sync_active_jobs_task,
)
from studio_ledger.services.ledger import get_balance

USER_ID = "user-1"


class TestSubmitSegmentTask:
    """Test the segment submission task."""

    def test_submits_segment(self, db_session: Session, fund, make_segment) -> None:
        fund(100)
        segment = make_segment()

        result = submit_segment_task.apply(args=[USER_ID, str(segment.id)]).get()

        assert result["success"] is True
        assert result["status"] == "submitted"
        assert result["reserved_cost"] == 8
        assert result["provider_task_id"].startswith("stub-")

    def test_invalid_segment_id(self, db_session: Session) -> None:
        result = submit_segment_task.apply(args=[USER_ID, "not-a-uuid"]).get()

        assert result["success"] is False
        assert "Invalid segment ID" in result["error"]

    def test_insufficient_funds(self, db_session: Session, make_segment) -> None:
        segment = make_segment()

        result = submit_segment_task.apply(args=[USER_ID, str(segment.id)]).get()

        assert result["success"] is False
        assert "Insufficient balance" in result["error"]


class TestSyncTasks:
    """Test the periodic sync and sweep tasks."""

    def test_sync_charges_finished_segments(
        self, db_session: Session, fund, make_segment
    ) -> None:
        fund(100)
        segment = make_segment()
        submit_segment_task.apply(args=[USER_ID, str(segment.id)]).get()

        result = sync_active_jobs_task.apply().get()

        assert result == {"success": True, "scripts": 1, "rehearsal_owners": 0}
        db_session.expire_all()
        assert segment.status == "done"
        snapshot = get_balance(db_session, USER_ID)
        assert (snapshot.balance, snapshot.reserved) == (92, 0)

    def test_sync_with_nothing_in_flight(self, db_session: Session) -> None:
        result = sync_active_jobs_task.apply().get()

        assert result == {"success": True, "scripts": 0, "rehearsal_owners": 0}

    def test_sweep(self, db_session: Session, fund, make_segment) -> None:
        fund(100)
        segment = make_segment()
        submit_segment_task.apply(args=[USER_ID, str(segment.id)]).get()

        result = sweep_stale_jobs_task.apply().get()

        assert result == {"success": True, "released": 0}
