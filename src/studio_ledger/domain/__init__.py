"""Domain models and business rules."""

from studio_ledger.domain.enums import (
    JobKind,
    JobStatus,
    ProviderTaskState,
    ScriptStatus,
    TransactionType,
    UnlockOutcome,
)
from studio_ledger.domain.errors import (
    AlreadyTerminalError,
    EpisodeNotFoundError,
    InsufficientFundsError,
    InvalidTransitionError,
    JobNotFoundError,
    LedgerConsistencyError,
    LedgerError,
    NotFoundError,
    ProviderError,
    UnknownFeatureError,
    UnpricedModelError,
    UnsupportedModelError,
)
from studio_ledger.domain.models import (
    BalanceSnapshot,
    Charged,
    Released,
    Reservation,
    SegmentSpec,
    UnlockResult,
)

__all__ = [
    "AlreadyTerminalError",
    "BalanceSnapshot",
    "Charged",
    "EpisodeNotFoundError",
    "InsufficientFundsError",
    "InvalidTransitionError",
    "JobKind",
    "JobNotFoundError",
    "JobStatus",
    "LedgerConsistencyError",
    "LedgerError",
    "NotFoundError",
    "ProviderError",
    "ProviderTaskState",
    "Released",
    "Reservation",
    "ScriptStatus",
    "SegmentSpec",
    "TransactionType",
    "UnknownFeatureError",
    "UnpricedModelError",
    "UnsupportedModelError",
    "UnlockOutcome",
    "UnlockResult",
]
