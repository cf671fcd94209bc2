"""Tests for domain models and the job state machine."""

from uuid import uuid4

import pytest

from studio_ledger.domain.enums import JobKind, JobStatus
from studio_ledger.domain.errors import (
    AlreadyTerminalError,
    InsufficientFundsError,
    InvalidTransitionError,
    LedgerError,
)
from studio_ledger.domain.models import BalanceSnapshot, Reservation, SegmentSpec
from studio_ledger.domain.state_machine import (
    RESERVABLE,
    RESERVATION_HOLDING,
    TERMINAL,
    can_transition,
    check_transition,
    sources_for,
)


def test_balance_snapshot_available() -> None:
    """Available coins exclude reserved coins."""
    snapshot = BalanceSnapshot(user_id="u", balance=100, reserved=40)

    assert snapshot.available == 60


def test_balance_snapshot_defaults_to_empty() -> None:
    snapshot = BalanceSnapshot(user_id="u")

    assert snapshot.balance == 0
    assert snapshot.reserved == 0
    assert snapshot.available == 0


def test_reservation_is_immutable() -> None:
    reservation = Reservation(user_id="u", job_kind=JobKind.SEGMENT, job_id=uuid4(), amount=40)

    with pytest.raises(AttributeError):
        reservation.amount = 1  # type: ignore[misc]


def test_segment_spec_defaults() -> None:
    spec = SegmentSpec(prompt="Close-up on the ring")

    assert spec.duration_sec is None
    assert spec.segment_index is None
    assert spec.shot_type == "medium"
    assert spec.camera_move == "static"


def test_errors_share_base_class() -> None:
    assert issubclass(InsufficientFundsError, LedgerError)
    assert issubclass(AlreadyTerminalError, LedgerError)

    error = InsufficientFundsError("u", required=40, available=30)
    assert error.required == 40
    assert error.available == 30
    assert "requires 40" in str(error)


class TestTransitions:
    """Test the job status transition table."""

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (JobStatus.PENDING, JobStatus.RESERVED),
            (JobStatus.FAILED, JobStatus.RESERVED),
            (JobStatus.RESERVED, JobStatus.SUBMITTED),
            (JobStatus.RESERVED, JobStatus.FAILED),
            (JobStatus.SUBMITTED, JobStatus.GENERATING),
            (JobStatus.SUBMITTED, JobStatus.DONE),
            (JobStatus.GENERATING, JobStatus.DONE),
            (JobStatus.GENERATING, JobStatus.FAILED),
        ],
    )
    def test_allowed(self, current: JobStatus, target: JobStatus) -> None:
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (JobStatus.PENDING, JobStatus.DONE),
            (JobStatus.PENDING, JobStatus.SUBMITTED),
            (JobStatus.DONE, JobStatus.RESERVED),
            (JobStatus.DONE, JobStatus.FAILED),
            (JobStatus.DONE, JobStatus.PENDING),
            (JobStatus.FAILED, JobStatus.DONE),
            (JobStatus.GENERATING, JobStatus.SUBMITTED),
            (JobStatus.RESERVED, JobStatus.PENDING),
        ],
    )
    def test_rejected(self, current: JobStatus, target: JobStatus) -> None:
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransitionError):
            check_transition(current, target)

    def test_nothing_returns_to_pending(self) -> None:
        for state in JobStatus:
            assert not can_transition(state, JobStatus.PENDING)

    def test_draft_is_rehearsal_only(self) -> None:
        assert can_transition(JobStatus.DRAFT, JobStatus.RESERVED, JobKind.REHEARSAL)
        assert not can_transition(JobStatus.DRAFT, JobStatus.RESERVED, JobKind.SEGMENT)
        assert can_transition(JobStatus.DONE, JobStatus.DRAFT, JobKind.REHEARSAL)
        assert can_transition(JobStatus.FAILED, JobStatus.DRAFT, JobKind.REHEARSAL)
        assert not can_transition(JobStatus.DONE, JobStatus.DRAFT, JobKind.SEGMENT)

    def test_done_is_never_reached_from_a_terminal_state(self) -> None:
        for kind in JobKind:
            for target in sources_for(JobStatus.DONE, kind):
                assert target not in TERMINAL

    def test_sources_for_done_are_reservation_holding(self) -> None:
        assert sources_for(JobStatus.DONE) == RESERVATION_HOLDING
        assert sources_for(JobStatus.FAILED) == RESERVATION_HOLDING

    def test_sources_for_reserved_match_reservable(self) -> None:
        for kind in JobKind:
            assert sources_for(JobStatus.RESERVED, kind) == RESERVABLE[kind]
