"""Job status transition table."""

from studio_ledger.domain.enums import JobKind, JobStatus
from studio_ledger.domain.errors import InvalidTransitionError

# States in which a coin reservation for the job's cost is outstanding
RESERVATION_HOLDING: frozenset[JobStatus] = frozenset(
    {JobStatus.RESERVED, JobStatus.SUBMITTED, JobStatus.GENERATING}
)

TERMINAL: frozenset[JobStatus] = frozenset({JobStatus.DONE, JobStatus.FAILED})

# States from which a fresh reservation may be taken
RESERVABLE: dict[JobKind, frozenset[JobStatus]] = {
    JobKind.SEGMENT: frozenset({JobStatus.PENDING, JobStatus.FAILED}),
    JobKind.REHEARSAL: frozenset({JobStatus.DRAFT, JobStatus.FAILED}),
}

_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RESERVED}),
    JobStatus.DRAFT: frozenset({JobStatus.RESERVED}),
    JobStatus.RESERVED: frozenset({JobStatus.SUBMITTED, JobStatus.DONE, JobStatus.FAILED}),
    JobStatus.SUBMITTED: frozenset({JobStatus.GENERATING, JobStatus.DONE, JobStatus.FAILED}),
    JobStatus.GENERATING: frozenset({JobStatus.DONE, JobStatus.FAILED}),
    JobStatus.FAILED: frozenset({JobStatus.RESERVED, JobStatus.DRAFT}),
    JobStatus.DONE: frozenset({JobStatus.DRAFT}),
}

# Rehearsals start in draft and segments in pending; only rehearsals return to draft
_REHEARSAL_ONLY_TARGETS = frozenset({JobStatus.DRAFT})


def can_transition(current: JobStatus, target: JobStatus, kind: JobKind = JobKind.SEGMENT) -> bool:
    """Whether ``current -> target`` is an allowed transition for a job of ``kind``."""
    current = JobStatus(current)
    target = JobStatus(target)
    if target in _REHEARSAL_ONLY_TARGETS and kind != JobKind.REHEARSAL:
        return False
    if current == JobStatus.DRAFT and kind != JobKind.REHEARSAL:
        return False
    if current == JobStatus.PENDING and kind != JobKind.SEGMENT:
        return False
    return target in _TRANSITIONS[current]


def check_transition(current: JobStatus, target: JobStatus, kind: JobKind = JobKind.SEGMENT) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is allowed."""
    if not can_transition(current, target, kind):
        raise InvalidTransitionError(str(current), str(target))


def sources_for(target: JobStatus, kind: JobKind = JobKind.SEGMENT) -> frozenset[JobStatus]:
    """All states from which ``target`` can be reached for a job of ``kind``.

    Used to build conditional ``UPDATE ... WHERE status IN (...)`` guards.
    """
    return frozenset(
        state for state in _TRANSITIONS if can_transition(state, JobStatus(target), kind)
    )
