"""Seedance video generation provider (Volcengine Ark task API)."""

from typing import Any

import httpx

from studio_ledger.adapters.video_gen.base import (
    VideoGenProvider,
    VideoGenRequest,
    VideoGenSubmission,
    VideoTaskStatus,
)
from studio_ledger.config import settings
from studio_ledger.domain.enums import ProviderTaskState
from studio_ledger.domain.errors import ProviderError
from studio_ledger.logging import get_logger

logger = get_logger(__name__)


class SeedanceProvider(VideoGenProvider):
    """Seedance text/image-to-video via the Ark content generation task API.

    Submit:  POST {base_url}/contents/generations/tasks
    Query:   GET  {base_url}/contents/generations/tasks/{id}
    """

    MODEL_IDS: dict[str, str] = {
        "seedance_2_0": "doubao-seedance-2-0-t2v-250610",
        "seedance_1_5_pro": "doubao-seedance-1-5-pro-251215",
        "seedance_1_0_pro": "doubao-seedance-1-0-pro-250528",
    }

    # Accepted duration range per model, in seconds
    MIN_DURATION = 4
    MAX_DURATION: dict[str, int] = {
        "seedance_2_0": 15,
        "seedance_1_5_pro": 12,
        "seedance_1_0_pro": 12,
    }

    MAX_REFERENCE_IMAGES = 9

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key or settings.ark_api_key
        self.base_url = (base_url or settings.seedance_base_url).rstrip("/")
        self.timeout = timeout

        if not self.api_key:
            logger.warning("Ark API key not configured for Seedance")

    @property
    def name(self) -> str:
        return "seedance"

    def supports_model(self, model: str) -> bool:
        return model in self.MODEL_IDS

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @classmethod
    def _clamp_duration(cls, model: str, duration_seconds: int) -> int:
        maximum = cls.MAX_DURATION.get(model, 12)
        return min(max(round(duration_seconds), cls.MIN_DURATION), maximum)

    def _build_payload(self, request: VideoGenRequest) -> dict[str, Any]:
        content: list[dict[str, Any]] = [
            {"type": "image_url", "image_url": {"url": url}}
            for url in request.image_urls[: self.MAX_REFERENCE_IMAGES]
        ]
        content.append({"type": "text", "text": request.prompt})

        payload: dict[str, Any] = {
            "model": self.MODEL_IDS[request.model],
            "content": content,
            "resolution": "1080p" if request.resolution == "1080p" else "720p",
            "ratio": request.aspect_ratio,
            "duration": self._clamp_duration(request.model, request.duration_seconds),
            "seed": -1,
            "watermark": False,
            "camera_fixed": False,
        }
        if request.options:
            payload.update(request.options)
        return payload

    async def submit(self, request: VideoGenRequest) -> VideoGenSubmission:
        """Submit a Seedance generation task."""
        if not self.api_key:
            return VideoGenSubmission(success=False, error_message="Ark API key not configured")
        if request.model not in self.MODEL_IDS:
            return VideoGenSubmission(
                success=False, error_message=f"Unknown Seedance model: {request.model}"
            )

        payload = self._build_payload(request)
        logger.info("seedance_submit_started", model=payload["model"], duration=payload["duration"])

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/contents/generations/tasks",
                    headers=self._headers(),
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            error_msg = f"Seedance API error: {e.response.status_code} - {e.response.text}"
            logger.error("seedance_api_error", error=error_msg)
            return VideoGenSubmission(success=False, error_message=error_msg)
        except httpx.HTTPError as e:
            logger.error("seedance_submit_error", error=str(e))
            return VideoGenSubmission(success=False, error_message=str(e))

        task_id = data.get("id")
        if not task_id:
            return VideoGenSubmission(
                success=False,
                error_message=f"Seedance submission returned no task id: {data}",
            )

        logger.info("seedance_task_submitted", task_id=task_id)
        return VideoGenSubmission(
            success=True,
            task_id=task_id,
            metadata={"provider": self.name, "model": payload["model"]},
        )

    async def query(self, task_id: str) -> VideoTaskStatus:
        """Fetch and normalize the state of a Seedance task.

        Seedance states: queued, running, succeeded, failed, cancelled, expired.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}/contents/generations/tasks/{task_id}",
                    headers=self._headers(),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.warning("seedance_query_error", task_id=task_id, error=str(e))
            raise ProviderError(f"Seedance status query failed: {e}") from e

        status = data.get("status") or "queued"

        if status == "succeeded":
            video_url = next(
                (
                    item.get("video_url", {}).get("url")
                    for item in data.get("content") or []
                    if item.get("type") == "video_url"
                ),
                None,
            )
            if not video_url:
                return VideoTaskStatus(
                    task_id=task_id,
                    state=ProviderTaskState.FAILED,
                    error_message="Task succeeded without a video URL",
                )
            return VideoTaskStatus(
                task_id=task_id,
                state=ProviderTaskState.DONE,
                video_url=video_url,
            )

        if status in ("failed", "cancelled", "expired"):
            error = data.get("error") or {}
            return VideoTaskStatus(
                task_id=task_id,
                state=ProviderTaskState.FAILED,
                error_message=error.get("message") or f"Task {status}",
            )

        return VideoTaskStatus(task_id=task_id, state=ProviderTaskState.GENERATING)

    async def health_check(self) -> bool:
        """Seedance is usable when an API key is configured."""
        return bool(self.api_key)
