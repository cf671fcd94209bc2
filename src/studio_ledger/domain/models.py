"""Domain models - pure Python classes independent of database."""

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from studio_ledger.domain.enums import JobKind, UnlockOutcome


@dataclass
class SegmentSpec:
    """A planned video segment as submitted by the client."""

    prompt: str
    duration_sec: int | None = None
    segment_index: int | None = None
    scene_num: int = 0
    shot_type: str = "medium"
    camera_move: str = "static"


@dataclass(frozen=True)
class Reservation:
    """An outstanding hold of ``amount`` coins for one job."""

    user_id: str
    job_kind: JobKind
    job_id: UUID
    amount: int


@dataclass(frozen=True)
class Charged:
    """Outcome of converting a reservation into a permanent charge.

    ``applied`` is False when the job had already left the reservation-holding
    states, in which case nothing changed.
    """

    reservation: Reservation
    applied: bool
    balance_after: int | None = None


@dataclass(frozen=True)
class Released:
    """Outcome of releasing a reservation back to the available balance."""

    reservation: Reservation
    applied: bool
    balance_after: int | None = None


@dataclass
class BalanceSnapshot:
    """Point-in-time view of a user's balance row."""

    user_id: str
    balance: int = 0
    reserved: int = 0
    total_purchased: int = 0
    total_consumed: int = 0

    @property
    def available(self) -> int:
        """Coins that can be spent or reserved right now."""
        return self.balance - self.reserved


@dataclass
class UnlockResult:
    """Result of an episode unlock attempt."""

    outcome: UnlockOutcome
    episode_id: UUID
    coins_charged: int = 0
    balance_after: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
