"""Episode unlock gate.

Unlocking charges the episode price directly, with no reservation phase: the
grant is local and instantaneous, so nothing can fail after the charge. The
deduction and the grant insert share one transaction, and the unique
(user_id, episode_id) constraint is the guard against concurrent double
unlocks. A losing racer's transaction rolls back, including its deduction.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studio_ledger.config import settings
from studio_ledger.db.models import EpisodeModel, EpisodeUnlockModel
from studio_ledger.domain.enums import UnlockOutcome
from studio_ledger.domain.errors import EpisodeNotFoundError
from studio_ledger.domain.models import UnlockResult
from studio_ledger.logging import get_logger
from studio_ledger.services import ledger

logger = get_logger(__name__)


def is_free_episode(episode: EpisodeModel) -> bool:
    """Whether every viewer can watch the episode without a grant."""
    return episode.episode_num <= settings.free_episode_count


def _find_grant(session: Session, user_id: str, episode_id: UUID) -> EpisodeUnlockModel | None:
    return session.execute(
        select(EpisodeUnlockModel).where(
            EpisodeUnlockModel.user_id == user_id,
            EpisodeUnlockModel.episode_id == episode_id,
        )
    ).scalar_one_or_none()


def has_access(session: Session, user_id: str | None, episode: EpisodeModel) -> bool:
    """Whether a user may watch an episode (free, or unlocked)."""
    if is_free_episode(episode):
        return True
    if user_id is None:
        return False
    return _find_grant(session, user_id, episode.id) is not None


def unlock_episode(
    session: Session,
    user_id: str,
    episode_id: UUID,
    cost: int | None = None,
) -> UnlockResult:
    """Unlock an episode for a user.

    Args:
        session: Database session.
        user_id: Viewer paying for the episode.
        episode_id: Episode to unlock.
        cost: Price in coins. Defaults to the episode's ``unlock_cost``.

    Returns:
        UnlockResult with outcome FREE (no charge, no grant row), UNLOCKED
        (charged once, grant row created) or ALREADY_UNLOCKED (no charge).

    Raises:
        EpisodeNotFoundError: The episode does not exist.
        InsufficientFundsError: Available balance is below the price.
    """
    episode = session.get(EpisodeModel, episode_id)
    if episode is None:
        raise EpisodeNotFoundError(f"Episode {episode_id} not found")

    if is_free_episode(episode):
        # First free watch opens the viewer's account
        ledger.open_account(session, user_id)
        return UnlockResult(outcome=UnlockOutcome.FREE, episode_id=episode_id)

    if _find_grant(session, user_id, episode_id) is not None:
        return UnlockResult(outcome=UnlockOutcome.ALREADY_UNLOCKED, episode_id=episode_id)

    price = episode.unlock_cost if cost is None else cost
    metadata = {
        "type": "episode_unlock",
        "episode_id": str(episode_id),
        "episode_num": episode.episode_num,
    }

    try:
        snapshot = ledger.deduct(
            session,
            user_id,
            price,
            description=f"Unlocked episode {episode.episode_num}",
            metadata=metadata,
        )
        session.add(
            EpisodeUnlockModel(user_id=user_id, episode_id=episode_id, coins_cost=price)
        )
        session.flush()
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info("episode_unlock_race_lost", user_id=user_id, episode_id=str(episode_id))
        return UnlockResult(outcome=UnlockOutcome.ALREADY_UNLOCKED, episode_id=episode_id)
    except Exception:
        session.rollback()
        raise

    logger.info(
        "episode_unlocked",
        user_id=user_id,
        episode_id=str(episode_id),
        cost=price,
        balance=snapshot.balance,
    )
    return UnlockResult(
        outcome=UnlockOutcome.UNLOCKED,
        episode_id=episode_id,
        coins_charged=price,
        balance_after=snapshot.balance,
    )
