"""Tests for the episode unlock gate."""

from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from studio_ledger.db.models import EpisodeUnlockModel, UserBalanceModel
from studio_ledger.domain.enums import JobKind, UnlockOutcome
from studio_ledger.domain.errors import EpisodeNotFoundError, InsufficientFundsError
from studio_ledger.services import ledger
from studio_ledger.services.unlock import has_access, is_free_episode, unlock_episode

USER_ID = "user-1"


def grant_count(session: Session, episode_id) -> int:
    return session.execute(
        select(func.count())
        .select_from(EpisodeUnlockModel)
        .where(EpisodeUnlockModel.user_id == USER_ID, EpisodeUnlockModel.episode_id == episode_id)
    ).scalar_one()


class TestUnlockEpisode:
    """Test paying for episode access."""

    def test_unlock_charges_once(self, db_session: Session, fund, episodes) -> None:
        """Balance 50: unlocking episode 3 twice charges 10 coins once."""
        fund(50)
        episode = episodes[2]

        first = unlock_episode(db_session, USER_ID, episode.id)

        assert first.outcome == UnlockOutcome.UNLOCKED
        assert first.coins_charged == 10
        assert first.balance_after == 40
        assert grant_count(db_session, episode.id) == 1

        second = unlock_episode(db_session, USER_ID, episode.id)

        assert second.outcome == UnlockOutcome.ALREADY_UNLOCKED
        assert second.coins_charged == 0
        assert ledger.get_balance(db_session, USER_ID).balance == 40
        assert grant_count(db_session, episode.id) == 1

    def test_first_episode_is_free(self, db_session: Session, fund, episodes) -> None:
        fund(50)
        episode = episodes[0]

        result = unlock_episode(db_session, USER_ID, episode.id)

        assert result.outcome == UnlockOutcome.FREE
        assert result.coins_charged == 0
        assert ledger.get_balance(db_session, USER_ID).balance == 50
        assert grant_count(db_session, episode.id) == 0

    def test_first_episode_free_without_balance(self, db_session: Session, episodes) -> None:
        result = unlock_episode(db_session, "new-viewer", episodes[0].id)

        assert result.outcome == UnlockOutcome.FREE
        assert ledger.get_balance(db_session, "new-viewer").balance == 0
        assert db_session.execute(
            select(func.count())
            .select_from(UserBalanceModel)
            .where(UserBalanceModel.user_id == "new-viewer")
        ).scalar_one() == 1

    def test_insufficient_funds(self, db_session: Session, fund, episodes) -> None:
        fund(5)
        episode = episodes[1]

        with pytest.raises(InsufficientFundsError):
            unlock_episode(db_session, USER_ID, episode.id)

        assert ledger.get_balance(db_session, USER_ID).balance == 5
        assert grant_count(db_session, episode.id) == 0

    def test_reserved_coins_cannot_pay_for_unlock(
        self, db_session: Session, fund, episodes, make_segment
    ) -> None:
        fund(50)
        ledger.reserve(db_session, USER_ID, 45, JobKind.SEGMENT, make_segment().id)

        with pytest.raises(InsufficientFundsError):
            unlock_episode(db_session, USER_ID, episodes[1].id)

        snapshot = ledger.get_balance(db_session, USER_ID)
        assert (snapshot.balance, snapshot.reserved) == (50, 45)

    def test_unknown_episode(self, db_session: Session, fund) -> None:
        fund(50)

        with pytest.raises(EpisodeNotFoundError):
            unlock_episode(db_session, USER_ID, uuid4())

    def test_cost_override(self, db_session: Session, fund, episodes) -> None:
        fund(50)

        result = unlock_episode(db_session, USER_ID, episodes[1].id, cost=3)

        assert result.coins_charged == 3
        assert result.balance_after == 47

    def test_concurrent_unlock_does_not_double_charge(
        self, db_session: Session, fund, episodes
    ) -> None:
        """A grant inserted after the existence check rolls back the second charge."""
        fund(50)
        episode = episodes[1]
        unlock_episode(db_session, USER_ID, episode.id)

        with patch("studio_ledger.services.unlock._find_grant", return_value=None):
            result = unlock_episode(db_session, USER_ID, episode.id)

        assert result.outcome == UnlockOutcome.ALREADY_UNLOCKED
        assert ledger.get_balance(db_session, USER_ID).balance == 40
        assert grant_count(db_session, episode.id) == 1

    def test_free_episode_count_is_configurable(
        self, db_session: Session, fund, episodes
    ) -> None:
        fund(50)

        with patch("studio_ledger.services.unlock.settings") as mock_settings:
            mock_settings.free_episode_count = 0
            result = unlock_episode(db_session, USER_ID, episodes[0].id)

        assert result.outcome == UnlockOutcome.UNLOCKED
        assert result.balance_after == 40


class TestAccess:
    """Test access checks."""

    def test_free_episode_open_to_everyone(self, db_session: Session, episodes) -> None:
        assert is_free_episode(episodes[0])
        assert has_access(db_session, None, episodes[0])

    def test_locked_until_unlocked(self, db_session: Session, fund, episodes) -> None:
        fund(50)
        episode = episodes[2]

        assert not has_access(db_session, USER_ID, episode)
        assert not has_access(db_session, None, episode)

        unlock_episode(db_session, USER_ID, episode.id)

        assert has_access(db_session, USER_ID, episode)
        assert not has_access(db_session, "someone-else", episode)
