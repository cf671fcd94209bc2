"""Episode segment video generation endpoints."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator

from studio_ledger.api.deps import CurrentUserDep, ProviderDep, SessionDep, http_error
from studio_ledger.api.routes.tokens import BalanceResponse
from studio_ledger.db.models import VideoSegmentModel
from studio_ledger.domain.enums import JobStatus
from studio_ledger.domain.errors import LedgerError
from studio_ledger.domain.models import SegmentSpec
from studio_ledger.domain.state_machine import TERMINAL
from studio_ledger.logging import get_logger
from studio_ledger.services import generation, ledger

router = APIRouter(prefix="/video", tags=["Video"])
logger = get_logger(__name__)


class SegmentRequest(BaseModel):
    """A planned segment of an episode."""

    prompt: str = Field(..., min_length=1, max_length=5000)
    duration_sec: int | None = Field(None, ge=1, le=600)
    segment_index: int | None = Field(None, ge=0)
    scene_num: int = Field(default=0, ge=0)
    shot_type: str = Field(default="medium", max_length=50)
    camera_move: str = Field(default="static", max_length=50)


class SubmitRequest(BaseModel):
    """Submit a whole episode (batch) or retry a single segment."""

    mode: Literal["batch", "single"] = "batch"
    script_id: UUID | None = None
    episode_num: int | None = Field(None, ge=1)
    model: str | None = None
    resolution: str | None = None
    segments: list[SegmentRequest] = Field(default_factory=list, max_length=200)
    segment_id: UUID | None = None

    @model_validator(mode="after")
    def check_mode_fields(self) -> "SubmitRequest":
        if self.mode == "single":
            if self.segment_id is None:
                raise ValueError("segment_id is required in single mode")
        else:
            missing = [
                name
                for name in ("script_id", "episode_num", "model", "resolution")
                if getattr(self, name) is None
            ]
            if missing:
                raise ValueError(f"Batch mode requires: {', '.join(missing)}")
            if not self.segments:
                raise ValueError("Batch mode requires at least one segment")
        return self


class SegmentResponse(BaseModel):
    """Segment generation state."""

    id: str
    script_id: str
    episode_num: int
    segment_index: int
    scene_num: int
    prompt: str
    model: str
    resolution: str
    duration_sec: int
    status: str
    reserved_cost: int | None = None
    token_cost: int | None = None
    provider_task_id: str | None = None
    video_url: str | None = None
    thumbnail_url: str | None = None
    error_message: str | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_model(cls, segment: VideoSegmentModel) -> "SegmentResponse":
        return cls(
            id=str(segment.id),
            script_id=str(segment.script_id),
            episode_num=segment.episode_num,
            segment_index=segment.segment_index,
            scene_num=segment.scene_num,
            prompt=segment.prompt,
            model=segment.model,
            resolution=segment.resolution,
            duration_sec=segment.duration_sec,
            status=segment.status,
            reserved_cost=segment.reserved_cost,
            token_cost=segment.token_cost,
            provider_task_id=segment.provider_task_id,
            video_url=segment.video_url,
            thumbnail_url=segment.thumbnail_url,
            error_message=segment.error_message,
            completed_at=segment.completed_at,
        )


class SubmitResponse(BaseModel):
    """Result of a submission."""

    segments: list[SegmentResponse]
    reserved_coins: int
    balance: BalanceResponse


class StatusResponse(BaseModel):
    """Current state of an episode's segments."""

    segments: list[SegmentResponse]
    all_terminal: bool


class ResetResponse(BaseModel):
    """Result of a reset."""

    deleted: int


@router.post(
    "/submit",
    response_model=SubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit video generation",
    description=(
        "Reserve coins and submit segments to the video provider. Batch mode plans and "
        "reserves a whole episode; single mode retries one pending or failed segment."
    ),
)
async def submit(
    request: SubmitRequest,
    session: SessionDep,
    user_id: CurrentUserDep,
    provider: ProviderDep,
) -> SubmitResponse:
    """Submit an episode batch or a single segment."""
    try:
        if request.mode == "single" and request.segment_id is not None:
            segment = await generation.submit_segment(
                session, request.segment_id, user_id, provider
            )
            segments = [segment]
            reserved = segment.reserved_cost or 0
        else:
            batch = await generation.submit_batch(
                session,
                user_id,
                request.script_id,
                request.episode_num,
                request.model,
                request.resolution,
                [SegmentSpec(**s.model_dump()) for s in request.segments],
                provider,
            )
            segments = batch.segments
            reserved = batch.total_cost
    except LedgerError as e:
        logger.info("video_submit_rejected", user_id=user_id, error=str(e))
        raise http_error(e) from e

    return SubmitResponse(
        segments=[SegmentResponse.from_model(s) for s in segments],
        reserved_coins=reserved,
        balance=BalanceResponse.from_snapshot(ledger.get_balance(session, user_id)),
    )


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="Segment status",
    description="Sync in-flight segments with the provider and return their state.",
)
async def get_status(
    session: SessionDep,
    user_id: CurrentUserDep,
    provider: ProviderDep,
    script_id: UUID,
    episode_num: int | None = Query(default=None, ge=1),
) -> StatusResponse:
    """Get segment status for a script, optionally one episode."""
    try:
        generation.get_script(session, script_id, user_id)
        segments = await generation.sync_segments(session, script_id, provider, episode_num)
    except LedgerError as e:
        raise http_error(e) from e

    return StatusResponse(
        segments=[SegmentResponse.from_model(s) for s in segments],
        all_terminal=all(JobStatus(s.status) in TERMINAL for s in segments),
    )


@router.delete(
    "/reset",
    response_model=ResetResponse,
    summary="Reset segments",
    description="Delete a segment, or every segment of an episode, releasing held coins.",
)
async def reset(
    session: SessionDep,
    user_id: CurrentUserDep,
    segment_id: UUID | None = None,
    script_id: UUID | None = None,
    episode_num: int | None = Query(default=None, ge=1),
) -> ResetResponse:
    """Reset one segment or a whole episode."""
    try:
        if segment_id is not None:
            generation.reset_segment(session, segment_id, user_id)
            deleted = 1
        elif script_id is not None and episode_num is not None:
            deleted = generation.reset_episode(session, script_id, episode_num, user_id)
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Provide segment_id, or script_id and episode_num",
            )
    except LedgerError as e:
        raise http_error(e) from e

    return ResetResponse(deleted=deleted)
