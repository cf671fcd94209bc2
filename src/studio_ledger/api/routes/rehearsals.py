"""Rehearsal endpoints: standalone single-segment generations."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from studio_ledger.api.deps import CurrentUserDep, ProviderDep, SessionDep, http_error
from studio_ledger.db.models import RehearsalModel
from studio_ledger.domain.errors import LedgerError
from studio_ledger.logging import get_logger
from studio_ledger.services import generation

router = APIRouter(prefix="/rehearsals", tags=["Rehearsals"])
logger = get_logger(__name__)


class RehearsalCreateRequest(BaseModel):
    """Request to create a rehearsal draft."""

    prompt: str = Field(..., min_length=1, max_length=5000)
    model: str | None = None
    resolution: str | None = None
    duration_sec: int | None = Field(None, ge=1, le=600)


class RehearsalUpdateRequest(BaseModel):
    """Request to edit a rehearsal."""

    prompt: str | None = Field(None, min_length=1, max_length=5000)
    model: str | None = None
    resolution: str | None = None
    duration_sec: int | None = Field(None, ge=1, le=600)


class RehearsalResponse(BaseModel):
    """Rehearsal state."""

    id: str
    prompt: str
    model: str
    resolution: str
    duration_sec: int
    status: str
    reserved_cost: int | None = None
    token_cost: int | None = None
    video_url: str | None = None
    thumbnail_url: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_model(cls, rehearsal: RehearsalModel) -> "RehearsalResponse":
        return cls(
            id=str(rehearsal.id),
            prompt=rehearsal.prompt,
            model=rehearsal.model,
            resolution=rehearsal.resolution,
            duration_sec=rehearsal.duration_sec,
            status=rehearsal.status,
            reserved_cost=rehearsal.reserved_cost,
            token_cost=rehearsal.token_cost,
            video_url=rehearsal.video_url,
            thumbnail_url=rehearsal.thumbnail_url,
            error_message=rehearsal.error_message,
            created_at=rehearsal.created_at,
            completed_at=rehearsal.completed_at,
        )


@router.get(
    "",
    response_model=list[RehearsalResponse],
    summary="List rehearsals",
)
async def list_rehearsals(session: SessionDep, user_id: CurrentUserDep) -> list[RehearsalResponse]:
    """List the caller's rehearsals, newest first."""
    return [RehearsalResponse.from_model(r) for r in generation.list_rehearsals(session, user_id)]


@router.post(
    "",
    response_model=RehearsalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create rehearsal",
)
async def create_rehearsal(
    request: RehearsalCreateRequest,
    session: SessionDep,
    user_id: CurrentUserDep,
) -> RehearsalResponse:
    """Create a rehearsal draft."""
    try:
        rehearsal = generation.create_rehearsal(
            session,
            user_id,
            request.prompt,
            model=request.model,
            resolution=request.resolution,
            duration_sec=request.duration_sec,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return RehearsalResponse.from_model(rehearsal)


@router.get(
    "/status",
    response_model=list[RehearsalResponse],
    summary="Rehearsal status",
    description="Sync in-flight rehearsals with the provider and return all of them.",
)
async def rehearsal_status(
    session: SessionDep,
    user_id: CurrentUserDep,
    provider: ProviderDep,
) -> list[RehearsalResponse]:
    """Sync and list the caller's rehearsals."""
    rehearsals = await generation.sync_rehearsals(session, user_id, provider)
    return [RehearsalResponse.from_model(r) for r in rehearsals]


@router.get(
    "/{rehearsal_id}",
    response_model=RehearsalResponse,
    summary="Get rehearsal",
)
async def get_rehearsal(
    rehearsal_id: UUID,
    session: SessionDep,
    user_id: CurrentUserDep,
) -> RehearsalResponse:
    """Get one rehearsal."""
    try:
        rehearsal = generation.get_rehearsal(session, rehearsal_id, user_id)
    except LedgerError as e:
        raise http_error(e) from e
    return RehearsalResponse.from_model(rehearsal)


@router.put(
    "/{rehearsal_id}",
    response_model=RehearsalResponse,
    summary="Edit rehearsal",
    description="Edit a rehearsal. Finished or failed rehearsals return to draft.",
)
async def update_rehearsal(
    rehearsal_id: UUID,
    request: RehearsalUpdateRequest,
    session: SessionDep,
    user_id: CurrentUserDep,
) -> RehearsalResponse:
    """Edit a rehearsal."""
    try:
        rehearsal = generation.update_rehearsal(
            session,
            rehearsal_id,
            user_id,
            prompt=request.prompt,
            model=request.model,
            resolution=request.resolution,
            duration_sec=request.duration_sec,
        )
    except LedgerError as e:
        raise http_error(e) from e
    return RehearsalResponse.from_model(rehearsal)


@router.delete(
    "/{rehearsal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete rehearsal",
)
async def delete_rehearsal(
    rehearsal_id: UUID,
    session: SessionDep,
    user_id: CurrentUserDep,
) -> None:
    """Delete a rehearsal that is not generating."""
    try:
        generation.delete_rehearsal(session, rehearsal_id, user_id)
    except LedgerError as e:
        raise http_error(e) from e


@router.post(
    "/{rehearsal_id}/submit",
    response_model=RehearsalResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit rehearsal",
    description="Reserve coins and submit a draft or failed rehearsal to the video provider.",
)
async def submit_rehearsal(
    rehearsal_id: UUID,
    session: SessionDep,
    user_id: CurrentUserDep,
    provider: ProviderDep,
) -> RehearsalResponse:
    """Submit a rehearsal for generation."""
    try:
        rehearsal = await generation.submit_rehearsal(session, rehearsal_id, user_id, provider)
    except LedgerError as e:
        logger.info("rehearsal_submit_rejected", rehearsal_id=str(rehearsal_id), error=str(e))
        raise http_error(e) from e
    return RehearsalResponse.from_model(rehearsal)
