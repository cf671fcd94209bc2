"""Base interface for video generation providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from studio_ledger.domain.enums import ProviderTaskState


@dataclass
class VideoGenRequest:
    """Request for video generation."""

    model: str
    resolution: str
    prompt: str
    duration_seconds: int
    image_urls: list[str] = field(default_factory=list)
    reference_video: str | None = None
    aspect_ratio: str = "16:9"
    options: dict[str, Any] | None = None


@dataclass
class VideoGenSubmission:
    """Result of submitting a generation task."""

    success: bool
    task_id: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class VideoTaskStatus:
    """Normalized status of a submitted generation task."""

    task_id: str
    state: ProviderTaskState
    video_url: str | None = None
    thumbnail_url: str | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (ProviderTaskState.DONE, ProviderTaskState.FAILED)


class VideoGenProvider(ABC):
    """Abstract base class for video generation providers.

    Implementations:
    - StubVideoGenProvider: Simulated tasks for tests and local runs
    - SeedanceProvider: Volcengine Ark content generation task API
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def submit(self, request: VideoGenRequest) -> VideoGenSubmission:
        """Submit a generation task.

        Args:
            request: Video generation request with prompt and parameters

        Returns:
            VideoGenSubmission with the provider task id or error information
        """
        ...

    @abstractmethod
    async def query(self, task_id: str) -> VideoTaskStatus:
        """Check the status of a submitted task.

        A DONE or FAILED state is the provider's final word on the task.

        Raises:
            ProviderError: The status could not be fetched. The task's state
                is unknown and callers must not treat this as a failure.
        """
        ...

    def supports_model(self, model: str) -> bool:
        """Whether this provider can run generation tasks for ``model``."""
        return True

    async def health_check(self) -> bool:
        """Check if the provider is available and healthy.

        Returns:
            True if provider is operational, False otherwise
        """
        return True
