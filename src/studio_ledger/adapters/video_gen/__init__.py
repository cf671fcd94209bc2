"""Video generation adapters."""

from studio_ledger.adapters.video_gen.base import (
    VideoGenProvider,
    VideoGenRequest,
    VideoGenSubmission,
    VideoTaskStatus,
)
from studio_ledger.adapters.video_gen.seedance import SeedanceProvider
from studio_ledger.adapters.video_gen.stub import StubVideoGenProvider

__all__ = [
    "VideoGenProvider",
    "VideoGenRequest",
    "VideoGenSubmission",
    "VideoTaskStatus",
    "SeedanceProvider",
    "StubVideoGenProvider",
]
