"""Business logic services."""

from studio_ledger.services.features import FeaturePrice, charge_feature, get_feature_price
from studio_ledger.services.ledger import (
    add_coins,
    advance,
    charge,
    direct_deduction,
    get_available_balance,
    get_balance,
    open_account,
    release,
    reservation_for,
    reserve,
    reserve_batch,
)
from studio_ledger.services.poller import JobStatusPoller, PollResult, PollStopReason
from studio_ledger.services.pricing import estimate_cost, is_purchasable, segment_cost
from studio_ledger.services.unlock import has_access, unlock_episode

__all__ = [
    # Ledger
    "add_coins",
    "advance",
    "charge",
    "direct_deduction",
    "get_available_balance",
    "get_balance",
    "open_account",
    "release",
    "reservation_for",
    "reserve",
    "reserve_batch",
    # Pricing
    "estimate_cost",
    "is_purchasable",
    "segment_cost",
    # Unlock gate
    "has_access",
    "unlock_episode",
    # AI features
    "FeaturePrice",
    "charge_feature",
    "get_feature_price",
    # Polling
    "JobStatusPoller",
    "PollResult",
    "PollStopReason",
]
