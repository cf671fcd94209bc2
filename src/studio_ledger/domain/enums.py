"""Domain enumerations."""

from enum import StrEnum


class JobStatus(StrEnum):
    """Status of a metered generation job (video segment or rehearsal)."""

    PENDING = "pending"
    DRAFT = "draft"  # Rehearsals only, editable before submission
    RESERVED = "reserved"
    SUBMITTED = "submitted"
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


class JobKind(StrEnum):
    """Kinds of job that hold coin reservations."""

    SEGMENT = "segment"
    REHEARSAL = "rehearsal"


class TransactionType(StrEnum):
    """Types of audit entries in the token transaction log."""

    RESERVE = "reserve"
    CONSUME = "consume"
    RELEASE = "release"
    PURCHASE = "purchase"
    BONUS = "bonus"


class ProviderTaskState(StrEnum):
    """Normalized state reported by a video generation provider."""

    SUBMITTED = "submitted"
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


class UnlockOutcome(StrEnum):
    """Result of an episode unlock attempt."""

    UNLOCKED = "unlocked"
    ALREADY_UNLOCKED = "already_unlocked"
    FREE = "free"


class ScriptStatus(StrEnum):
    """Production status of a script."""

    DRAFT = "draft"
    PRODUCING = "producing"
    PUBLISHED = "published"
