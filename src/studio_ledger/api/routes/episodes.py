"""Episode unlock endpoints."""

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from studio_ledger.api.deps import CurrentUserDep, OptionalUserDep, SessionDep, http_error
from studio_ledger.db.models import EpisodeModel
from studio_ledger.domain.enums import UnlockOutcome
from studio_ledger.domain.errors import EpisodeNotFoundError, LedgerError
from studio_ledger.services import ledger, unlock

router = APIRouter(prefix="/episodes", tags=["Episodes"])


class UnlockResponse(BaseModel):
    """Result of unlocking an episode."""

    episode_id: str
    outcome: str
    already_unlocked: bool
    free: bool
    coins_charged: int
    balance: int


class AccessResponse(BaseModel):
    """Whether the caller may watch an episode."""

    episode_id: str
    episode_num: int
    has_access: bool
    free: bool
    unlock_cost: int


@router.post(
    "/{episode_id}/unlock",
    response_model=UnlockResponse,
    summary="Unlock episode",
    description=(
        "Charge the caller for an episode and record the grant. Unlocking twice is "
        "safe: the second call reports already_unlocked and charges nothing."
    ),
)
async def unlock_episode(
    episode_id: UUID,
    session: SessionDep,
    user_id: CurrentUserDep,
) -> UnlockResponse:
    """Unlock an episode for the caller."""
    try:
        result = unlock.unlock_episode(session, user_id, episode_id)
    except LedgerError as e:
        raise http_error(e) from e

    balance = (
        result.balance_after
        if result.balance_after is not None
        else ledger.get_balance(session, user_id).balance
    )
    return UnlockResponse(
        episode_id=str(episode_id),
        outcome=str(result.outcome),
        already_unlocked=result.outcome == UnlockOutcome.ALREADY_UNLOCKED,
        free=result.outcome == UnlockOutcome.FREE,
        coins_charged=result.coins_charged,
        balance=balance,
    )


@router.get(
    "/{episode_id}/access",
    response_model=AccessResponse,
    summary="Episode access",
)
async def episode_access(
    episode_id: UUID,
    session: SessionDep,
    user_id: OptionalUserDep,
) -> AccessResponse:
    """Report whether the caller may watch an episode."""
    episode = session.get(EpisodeModel, episode_id)
    if episode is None:
        raise http_error(EpisodeNotFoundError(f"Episode {episode_id} not found"))

    return AccessResponse(
        episode_id=str(episode_id),
        episode_num=episode.episode_num,
        has_access=unlock.has_access(session, user_id, episode),
        free=unlock.is_free_episode(episode),
        unlock_cost=episode.unlock_cost,
    )
