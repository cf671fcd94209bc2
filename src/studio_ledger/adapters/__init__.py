"""Adapters for external services."""

from studio_ledger.adapters.video_gen.base import VideoGenProvider

__all__ = [
    "VideoGenProvider",
]
