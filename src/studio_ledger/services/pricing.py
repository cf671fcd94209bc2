"""Model pricing table and coin cost calculation.

Provider cost is quoted in US cents per generated second. The user price is
the provider cost times a fixed markup, converted to coins at 100 cents per
coin and rounded up so a fraction of a coin is never given away.
"""

import math
from collections.abc import Iterable
from typing import Protocol

from studio_ledger.config import settings

# API cost per second in US cents, keyed by model then resolution
MODEL_PRICING: dict[str, dict[str, int]] = {
    "seedance_2_0": {"1080p": 80, "720p": 40},
    "seedance_1_5_pro": {"1080p": 100, "720p": 50},
    "jimeng_3_0_pro": {"1080p": 100},
    "jimeng_3_0": {"1080p": 63, "720p": 28},
    "jimeng_s2_pro": {"720p": 65},
}

CENTS_PER_COIN = 100


class HasDuration(Protocol):
    duration_sec: int | None


def cost_per_second(model: str, resolution: str) -> int:
    """Provider cost in cents per second, or 0 for an unknown combination."""
    return MODEL_PRICING.get(model, {}).get(resolution, 0)


def is_purchasable(model: str, resolution: str) -> bool:
    """Whether jobs with this model/resolution can be priced and submitted."""
    return cost_per_second(model, resolution) > 0


def resolve_duration(duration_sec: int | None) -> int:
    """Duration to bill for a segment, falling back to the configured default.

    Raises:
        ValueError: The duration is negative.
    """
    if duration_sec is not None and duration_sec < 0:
        raise ValueError(f"Segment duration must not be negative, got {duration_sec}")
    if not duration_sec:
        return settings.default_segment_duration
    return duration_sec


def estimate_cost(
    segments: Iterable[HasDuration | int | float | None],
    model: str,
    resolution: str,
    markup: int | None = None,
) -> int:
    """Coin cost of generating ``segments`` with the given model and resolution.

    Segments may be objects with a ``duration_sec`` attribute or bare
    durations in seconds (None for the default). Unknown model/resolution
    pairs cost nothing.

    Returns:
        ceil(sum(cost_per_second * duration) * markup / 100)
    """
    per_second = cost_per_second(model, resolution)
    if per_second == 0:
        return 0

    total_seconds = 0
    for segment in segments:
        if segment is None or isinstance(segment, (int, float)):
            duration = segment
        else:
            duration = segment.duration_sec
        total_seconds += resolve_duration(duration)

    factor = settings.price_markup if markup is None else markup
    total_cents = per_second * total_seconds * factor
    return math.ceil(total_cents / CENTS_PER_COIN)


def segment_cost(model: str, resolution: str, duration_sec: int | None) -> int:
    """Coin cost of a single segment submitted on its own."""
    return estimate_cost([resolve_duration(duration_sec)], model, resolution)


def allocate_costs(durations: list[int | None], model: str, resolution: str) -> list[int]:
    """Split the cost of a batch across its segments.

    Each share is the increase of the rounded-up running total, so the shares
    always sum to ``estimate_cost`` of the whole batch.
    """
    shares: list[int] = []
    running: list[int] = []
    previous = 0
    for duration in durations:
        running.append(resolve_duration(duration))
        cumulative = estimate_cost(running, model, resolution)
        shares.append(cumulative - previous)
        previous = cumulative
    return shares
