"""Database layer."""

from studio_ledger.db.models import (
    Base,
    EpisodeModel,
    EpisodeUnlockModel,
    FeaturePriceModel,
    RehearsalModel,
    ScriptModel,
    SeriesModel,
    TokenTransactionModel,
    UserBalanceModel,
    VideoSegmentModel,
)
from studio_ledger.db.session import get_session, get_session_context, init_db

__all__ = [
    "Base",
    "get_session",
    "get_session_context",
    "init_db",
    # Models
    "EpisodeModel",
    "EpisodeUnlockModel",
    "FeaturePriceModel",
    "RehearsalModel",
    "ScriptModel",
    "SeriesModel",
    "TokenTransactionModel",
    "UserBalanceModel",
    "VideoSegmentModel",
]
