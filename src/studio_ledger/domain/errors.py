"""Ledger exceptions.

``InsufficientFundsError`` is user-correctable. ``ProviderError`` is raised only
after any outstanding reservation has been released. ``AlreadyTerminalError``
is an idempotency guard for jobs that have already left the requested state.
"""

from uuid import UUID


class LedgerError(Exception):
    """Base class for coin ledger errors."""

    pass


class InsufficientFundsError(LedgerError):
    """Raised when available balance does not cover a cost."""

    def __init__(self, user_id: str, required: int, available: int) -> None:
        self.user_id = user_id
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient balance for user {user_id}: requires {required}, available {available}"
        )


class ProviderError(LedgerError):
    """Raised when the external generation provider fails after a reservation."""

    def __init__(self, message: str, job_id: UUID | None = None) -> None:
        self.job_id = job_id
        super().__init__(message)


class AlreadyTerminalError(LedgerError):
    """Raised when a job is not in a state eligible for the requested operation."""

    def __init__(self, job_id: UUID, status: str) -> None:
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job {job_id} is {status} and cannot be transitioned")


class InvalidTransitionError(LedgerError):
    """Raised for a job status transition that is not in the transition table."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid job transition: {current} -> {target}")


class UnpricedModelError(LedgerError):
    """Raised when a model/resolution pair has no price and cannot be submitted."""

    def __init__(self, model: str, resolution: str) -> None:
        self.model = model
        self.resolution = resolution
        super().__init__(f"No price for model {model} at {resolution}")


class UnsupportedModelError(LedgerError):
    """Raised when the configured video provider cannot run a model."""

    def __init__(self, model: str, provider: str) -> None:
        self.model = model
        self.provider = provider
        super().__init__(f"Model {model} is not available on provider {provider}")


class NotFoundError(LedgerError):
    """Raised when a referenced record does not exist."""

    pass


class JobNotFoundError(NotFoundError):
    """Raised when a segment or rehearsal is not found."""

    pass


class EpisodeNotFoundError(NotFoundError):
    """Raised when an episode is not found."""

    pass


class UnknownFeatureError(NotFoundError):
    """Raised for an AI feature key with no price."""

    pass


class LedgerConsistencyError(LedgerError):
    """Raised when a balance row cannot absorb an operation it must accept.

    Indicates the reservation bookkeeping and the balance row disagree; the
    surrounding transaction is rolled back.
    """

    pass
