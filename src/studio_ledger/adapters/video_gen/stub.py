"""Stub video generation provider for testing."""

from uuid import uuid4

from studio_ledger.adapters.video_gen.base import (
    VideoGenProvider,
    VideoGenRequest,
    VideoGenSubmission,
    VideoTaskStatus,
)
from studio_ledger.domain.enums import ProviderTaskState
from studio_ledger.logging import get_logger

logger = get_logger(__name__)


class StubVideoGenProvider(VideoGenProvider):
    """Stub provider that simulates generation tasks without external calls.

    Tasks report ``generating`` for ``polls_until_finished`` queries and then
    finish with ``outcome``. Task ids this instance never issued (e.g. from
    another worker process) report done immediately.
    """

    def __init__(
        self,
        fail_submit: bool = False,
        outcome: ProviderTaskState = ProviderTaskState.DONE,
        polls_until_finished: int = 0,
    ) -> None:
        self.fail_submit = fail_submit
        self.outcome = outcome
        self.polls_until_finished = polls_until_finished
        self.submitted: list[VideoGenRequest] = []
        self._polls: dict[str, int] = {}

    @property
    def name(self) -> str:
        return "stub"

    async def submit(self, request: VideoGenRequest) -> VideoGenSubmission:
        """Record the request and hand back a fake task id."""
        logger.info(
            "stub_video_submit",
            model=request.model,
            prompt=request.prompt[:100],
            duration=request.duration_seconds,
        )
        if self.fail_submit:
            return VideoGenSubmission(success=False, error_message="Stub provider rejected task")

        self.submitted.append(request)
        task_id = f"stub-{uuid4().hex}"
        self._polls[task_id] = 0
        return VideoGenSubmission(
            success=True,
            task_id=task_id,
            metadata={"provider": self.name, "model": request.model},
        )

    async def query(self, task_id: str) -> VideoTaskStatus:
        """Report progress for a simulated task."""
        polls = self._polls.get(task_id)
        if polls is not None and polls < self.polls_until_finished:
            self._polls[task_id] = polls + 1
            return VideoTaskStatus(task_id=task_id, state=ProviderTaskState.GENERATING)

        if polls is not None and self.outcome == ProviderTaskState.FAILED:
            return VideoTaskStatus(
                task_id=task_id,
                state=ProviderTaskState.FAILED,
                error_message="Stub generation failed",
            )

        return VideoTaskStatus(
            task_id=task_id,
            state=ProviderTaskState.DONE,
            video_url=f"https://stub.local/videos/{task_id}.mp4",
            thumbnail_url=f"https://stub.local/thumbnails/{task_id}.jpg",
        )

    async def health_check(self) -> bool:
        """Stub provider is always healthy."""
        return True
