"""API route modules."""

from studio_ledger.api.routes import (
    admin,
    episodes,
    health,
    pricing,
    rehearsals,
    tokens,
    video,
)

__all__ = ["admin", "episodes", "health", "pricing", "rehearsals", "tokens", "video"]
