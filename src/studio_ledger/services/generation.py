"""Metered video generation: segments and rehearsals.

Flow for every paid job:
1. reserve coins (fails closed before any provider call)
2. submit to the provider, outside the ledger transaction
3. submission failure -> release, job failed, ProviderError raised
4. status sync: provider done -> charge, provider failed -> release

Episode segments run sequentially: a batch reserves all of its segments up
front, submits the first, and each sync that sees an episode go idle submits
the next reserved segment.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from studio_ledger.adapters.video_gen.base import (
    VideoGenProvider,
    VideoGenRequest,
    VideoGenSubmission,
)
from studio_ledger.adapters.video_gen.seedance import SeedanceProvider
from studio_ledger.adapters.video_gen.stub import StubVideoGenProvider
from studio_ledger.config import settings
from studio_ledger.db.models import RehearsalModel, ScriptModel, VideoSegmentModel
from studio_ledger.domain.enums import JobKind, JobStatus, ProviderTaskState, ScriptStatus
from studio_ledger.domain.errors import (
    AlreadyTerminalError,
    JobNotFoundError,
    NotFoundError,
    ProviderError,
    UnpricedModelError,
    UnsupportedModelError,
)
from studio_ledger.domain.models import Reservation, SegmentSpec
from studio_ledger.domain.state_machine import RESERVATION_HOLDING, check_transition
from studio_ledger.logging import get_logger
from studio_ledger.services import ledger
from studio_ledger.services.ledger import JobModel, atomic
from studio_ledger.services.pricing import (
    allocate_costs,
    is_purchasable,
    resolve_duration,
    segment_cost,
)

logger = get_logger(__name__)

IN_FLIGHT = (JobStatus.SUBMITTED, JobStatus.GENERATING)
EDITABLE_REHEARSAL = (JobStatus.DRAFT, JobStatus.FAILED, JobStatus.DONE)

DEFAULT_REHEARSAL_MODEL = "seedance_2_0"
DEFAULT_REHEARSAL_RESOLUTION = "720p"
DEFAULT_REHEARSAL_DURATION = 5


@dataclass
class BatchSubmission:
    """Segments created by a batch submission and their total reserved cost."""

    segments: list[VideoSegmentModel]
    total_cost: int


def get_video_gen_provider() -> VideoGenProvider:
    """Get the configured video generation provider."""
    provider = settings.video_gen_provider.lower()

    if provider == "seedance":
        return SeedanceProvider()
    return StubVideoGenProvider()


def _require_submittable(provider: VideoGenProvider, model: str, resolution: str) -> None:
    if not is_purchasable(model, resolution):
        raise UnpricedModelError(model, resolution)
    if not provider.supports_model(model):
        raise UnsupportedModelError(model, provider.name)


def _job_owner(session: Session, job: JobModel) -> str:
    if isinstance(job, RehearsalModel):
        return job.user_id
    script = session.get(ScriptModel, job.script_id)
    if script is None:
        raise NotFoundError(f"Script {job.script_id} not found")
    return script.user_id


def get_script(session: Session, script_id: UUID, user_id: str) -> ScriptModel:
    """Load a script owned by ``user_id``; other users' scripts read as missing."""
    script = session.get(ScriptModel, script_id)
    if script is None or script.user_id != user_id:
        raise NotFoundError(f"Script {script_id} not found")
    return script


def get_segment(session: Session, segment_id: UUID, user_id: str) -> VideoSegmentModel:
    segment = session.get(VideoSegmentModel, segment_id)
    if segment is None or _job_owner(session, segment) != user_id:
        raise JobNotFoundError(f"Segment {segment_id} not found")
    return segment


async def _submit_reserved(
    session: Session,
    job: JobModel,
    reservation: Reservation,
    provider: VideoGenProvider,
) -> JobModel:
    """Submit a job that already holds a reservation.

    Any failure to submit releases the reservation before ProviderError is raised.
    """
    request = VideoGenRequest(
        model=job.model,
        resolution=job.resolution,
        prompt=job.prompt,
        duration_seconds=job.duration_sec,
    )

    try:
        submission = await provider.submit(request)
    except Exception as e:
        logger.error(
            "provider_submit_raised",
            provider=provider.name,
            job_id=str(job.id),
            error=str(e),
        )
        submission = VideoGenSubmission(success=False, error_message=str(e))

    if not submission.success or not submission.task_id:
        error = submission.error_message or "Provider returned no task id"
        ledger.release(session, reservation, error_message=error)
        raise ProviderError(f"Video submission failed: {error}", job_id=job.id)

    moved = ledger.advance(
        session,
        reservation.job_kind,
        job.id,
        JobStatus.SUBMITTED,
        provider_task_id=submission.task_id,
    )
    if not moved:
        logger.warning(
            "submitted_job_changed_state",
            job_kind=str(reservation.job_kind),
            job_id=str(job.id),
            task_id=submission.task_id,
        )

    logger.info(
        "job_submitted",
        job_kind=str(reservation.job_kind),
        job_id=str(job.id),
        provider=provider.name,
        task_id=submission.task_id,
    )
    return job


# =============================================================================
# Episode segments
# =============================================================================


def plan_segments(
    session: Session,
    script_id: UUID,
    episode_num: int,
    model: str,
    resolution: str,
    specs: list[SegmentSpec],
) -> list[VideoSegmentModel]:
    """Replace an episode's unreserved segments with a new plan.

    Pending and failed segments are discarded. A planned index that is still
    held by a reserved, in-flight or finished segment raises
    AlreadyTerminalError.
    """
    with atomic(session):
        session.execute(
            delete(VideoSegmentModel).where(
                VideoSegmentModel.script_id == script_id,
                VideoSegmentModel.episode_num == episode_num,
                VideoSegmentModel.status.in_([str(JobStatus.PENDING), str(JobStatus.FAILED)]),
            )
        )
        occupied = {
            seg.segment_index: seg
            for seg in session.execute(
                select(VideoSegmentModel).where(
                    VideoSegmentModel.script_id == script_id,
                    VideoSegmentModel.episode_num == episode_num,
                )
            ).scalars()
        }

        segments = []
        for position, spec in enumerate(specs):
            index = spec.segment_index if spec.segment_index is not None else position
            if index in occupied:
                existing = occupied[index]
                raise AlreadyTerminalError(existing.id, existing.status)
            segment = VideoSegmentModel(
                script_id=script_id,
                episode_num=episode_num,
                segment_index=index,
                scene_num=spec.scene_num,
                prompt=spec.prompt,
                shot_type=spec.shot_type,
                camera_move=spec.camera_move,
                model=model,
                resolution=resolution,
                duration_sec=resolve_duration(spec.duration_sec),
                status=str(JobStatus.PENDING),
            )
            session.add(segment)
            segments.append(segment)
        session.flush()

    logger.info(
        "segments_planned",
        script_id=str(script_id),
        episode_num=episode_num,
        count=len(segments),
    )
    return segments


async def submit_batch(
    session: Session,
    user_id: str,
    script_id: UUID,
    episode_num: int,
    model: str,
    resolution: str,
    specs: list[SegmentSpec],
    provider: VideoGenProvider,
) -> BatchSubmission:
    """Plan an episode's segments, reserve their total cost and start the chain.

    Raises:
        InsufficientFundsError: The batch total exceeds the available balance;
            the planned segments stay pending.
        UnpricedModelError: The model/resolution pair has no price.
        UnsupportedModelError: The provider cannot run the model.
    """
    _require_submittable(provider, model, resolution)
    script = get_script(session, script_id, user_id)

    segments = plan_segments(session, script.id, episode_num, model, resolution, specs)
    costs = allocate_costs([s.duration_sec for s in segments], model, resolution)

    ledger.reserve_batch(
        session,
        user_id,
        [(JobKind.SEGMENT, segment.id, cost) for segment, cost in zip(segments, costs)],
        description=f"Batch video generation: {len(segments)} segments for episode {episode_num}",
    )

    with atomic(session):
        script.status = str(ScriptStatus.PRODUCING)

    await submit_next_reserved(session, script_id, episode_num, provider)
    return BatchSubmission(segments=segments, total_cost=sum(costs))


async def submit_segment(
    session: Session,
    segment_id: UUID,
    user_id: str,
    provider: VideoGenProvider,
) -> VideoSegmentModel:
    """Reserve and submit a single pending or failed segment (first try or retry)."""
    segment = get_segment(session, segment_id, user_id)
    _require_submittable(provider, segment.model, segment.resolution)

    cost = segment_cost(segment.model, segment.resolution, segment.duration_sec)
    reservation = ledger.reserve(
        session,
        user_id,
        cost,
        JobKind.SEGMENT,
        segment.id,
        description=f"Video generation: segment {segment.id}",
    )
    await _submit_reserved(session, segment, reservation, provider)
    return segment


async def submit_next_reserved(
    session: Session,
    script_id: UUID,
    episode_num: int,
    provider: VideoGenProvider,
) -> VideoSegmentModel | None:
    """Submit the lowest-index reserved segment if the episode is idle.

    Segments that fail to submit are released and the next one is tried.
    """
    script = session.get(ScriptModel, script_id)
    if script is None:
        raise NotFoundError(f"Script {script_id} not found")

    while True:
        segments = list(
            session.execute(
                select(VideoSegmentModel)
                .where(
                    VideoSegmentModel.script_id == script_id,
                    VideoSegmentModel.episode_num == episode_num,
                )
                .order_by(VideoSegmentModel.segment_index)
            ).scalars()
        )
        if any(JobStatus(s.status) in IN_FLIGHT for s in segments):
            return None

        waiting = next((s for s in segments if s.status == JobStatus.RESERVED), None)
        if waiting is None:
            return None

        reservation = ledger.reservation_for(waiting, script.user_id)
        if reservation is None:
            return None

        try:
            return await _submit_reserved(session, waiting, reservation, provider)
        except ProviderError as e:
            logger.warning(
                "chained_segment_submit_failed",
                segment_id=str(waiting.id),
                error=str(e),
            )


def reset_segment(session: Session, segment_id: UUID, user_id: str) -> None:
    """Delete a segment so it can be planned again, releasing any held coins."""
    segment = get_segment(session, segment_id, user_id)

    reservation = ledger.reservation_for(segment, user_id)
    if reservation is not None:
        ledger.release(session, reservation, error_message="Reset by user")

    with atomic(session):
        session.execute(delete(VideoSegmentModel).where(VideoSegmentModel.id == segment_id))

    logger.info("segment_reset", segment_id=str(segment_id), released=reservation is not None)


def reset_episode(session: Session, script_id: UUID, episode_num: int, user_id: str) -> int:
    """Reset every segment of an episode. Returns the number deleted."""
    get_script(session, script_id, user_id)
    segment_ids = list(
        session.execute(
            select(VideoSegmentModel.id).where(
                VideoSegmentModel.script_id == script_id,
                VideoSegmentModel.episode_num == episode_num,
            )
        ).scalars()
    )
    for segment_id in segment_ids:
        reset_segment(session, segment_id, user_id)
    return len(segment_ids)


def list_segments(
    session: Session,
    script_id: UUID,
    episode_num: int | None = None,
) -> list[VideoSegmentModel]:
    """Segments of a script (optionally one episode) in playback order."""
    query = select(VideoSegmentModel).where(VideoSegmentModel.script_id == script_id)
    if episode_num is not None:
        query = query.where(VideoSegmentModel.episode_num == episode_num)
    query = query.order_by(VideoSegmentModel.episode_num, VideoSegmentModel.segment_index)
    return list(session.execute(query).scalars())


# =============================================================================
# Status sync
# =============================================================================


async def sync_job(
    session: Session,
    job: JobModel,
    provider: VideoGenProvider,
) -> JobModel:
    """Apply the provider's view of an in-flight job to the ledger.

    Provider done charges the reservation, provider failed releases it.
    A provider that cannot be reached leaves the job untouched.
    """
    if JobStatus(job.status) not in IN_FLIGHT or not job.provider_task_id:
        return job

    kind = JobKind.REHEARSAL if isinstance(job, RehearsalModel) else JobKind.SEGMENT
    owner = _job_owner(session, job)

    try:
        status = await provider.query(job.provider_task_id)
    except ProviderError as e:
        logger.warning("job_status_query_failed", job_id=str(job.id), error=str(e))
        return job

    reservation = ledger.reservation_for(job, owner)

    if status.state == ProviderTaskState.DONE:
        if reservation is None:
            logger.error("finished_job_without_reservation", job_id=str(job.id))
            return job
        ledger.charge(
            session,
            reservation,
            video_url=status.video_url,
            thumbnail_url=status.thumbnail_url,
            metadata={"job_kind": str(kind), "task_id": job.provider_task_id},
        )
    elif status.state == ProviderTaskState.FAILED:
        if reservation is None:
            logger.error("failed_job_without_reservation", job_id=str(job.id))
            return job
        ledger.release(session, reservation, error_message=status.error_message or "Generation failed")
    elif status.state == ProviderTaskState.GENERATING and job.status == JobStatus.SUBMITTED:
        ledger.advance(session, kind, job.id, JobStatus.GENERATING)

    return job


async def sync_segments(
    session: Session,
    script_id: UUID,
    provider: VideoGenProvider,
    episode_num: int | None = None,
) -> list[VideoSegmentModel]:
    """Sync every in-flight segment of a script, then continue idle chains."""
    segments = list_segments(session, script_id, episode_num)

    touched_episodes = set()
    for segment in segments:
        if JobStatus(segment.status) in IN_FLIGHT:
            await sync_job(session, segment, provider)
            touched_episodes.add(segment.episode_num)
        elif segment.status == JobStatus.RESERVED:
            touched_episodes.add(segment.episode_num)

    for episode in sorted(touched_episodes):
        await submit_next_reserved(session, script_id, episode, provider)

    return list_segments(session, script_id, episode_num)


async def sync_active_jobs(session: Session, provider: VideoGenProvider) -> dict[str, int]:
    """Sync every active segment chain and in-flight rehearsal.

    Returns:
        Number of scripts and rehearsal owners visited.
    """
    script_ids = list(
        session.execute(
            select(VideoSegmentModel.script_id)
            .where(
                VideoSegmentModel.status.in_(
                    [str(JobStatus.RESERVED), *(str(s) for s in IN_FLIGHT)]
                )
            )
            .distinct()
        ).scalars()
    )
    for script_id in script_ids:
        await sync_segments(session, script_id, provider)

    owners = list(
        session.execute(
            select(RehearsalModel.user_id)
            .where(RehearsalModel.status.in_([str(s) for s in IN_FLIGHT]))
            .distinct()
        ).scalars()
    )
    for user_id in owners:
        await sync_rehearsals(session, user_id, provider)

    return {"scripts": len(script_ids), "rehearsal_owners": len(owners)}


# =============================================================================
# Rehearsals
# =============================================================================


def get_rehearsal(session: Session, rehearsal_id: UUID, user_id: str) -> RehearsalModel:
    rehearsal = session.get(RehearsalModel, rehearsal_id)
    if rehearsal is None or rehearsal.user_id != user_id:
        raise JobNotFoundError(f"Rehearsal {rehearsal_id} not found")
    return rehearsal


def list_rehearsals(session: Session, user_id: str) -> list[RehearsalModel]:
    return list(
        session.execute(
            select(RehearsalModel)
            .where(RehearsalModel.user_id == user_id)
            .order_by(RehearsalModel.created_at.desc())
        ).scalars()
    )


def create_rehearsal(
    session: Session,
    user_id: str,
    prompt: str,
    model: str | None = None,
    resolution: str | None = None,
    duration_sec: int | None = None,
) -> RehearsalModel:
    """Create a rehearsal in ``draft``."""
    prompt = prompt.strip()
    if not prompt:
        raise ValueError("Prompt is required")

    rehearsal = RehearsalModel(
        user_id=user_id,
        prompt=prompt,
        model=model or DEFAULT_REHEARSAL_MODEL,
        resolution=resolution or DEFAULT_REHEARSAL_RESOLUTION,
        duration_sec=duration_sec or DEFAULT_REHEARSAL_DURATION,
        status=str(JobStatus.DRAFT),
    )
    with atomic(session):
        session.add(rehearsal)
    logger.info("rehearsal_created", rehearsal_id=str(rehearsal.id), user_id=user_id)
    return rehearsal


def update_rehearsal(
    session: Session,
    rehearsal_id: UUID,
    user_id: str,
    prompt: str | None = None,
    model: str | None = None,
    resolution: str | None = None,
    duration_sec: int | None = None,
) -> RehearsalModel:
    """Edit a rehearsal. Editing a finished or failed one returns it to draft.

    Raises:
        AlreadyTerminalError: The rehearsal is holding a reservation.
    """
    rehearsal = get_rehearsal(session, rehearsal_id, user_id)
    status = JobStatus(rehearsal.status)
    if status not in EDITABLE_REHEARSAL:
        raise AlreadyTerminalError(rehearsal.id, rehearsal.status)

    with atomic(session):
        if prompt is not None:
            rehearsal.prompt = prompt.strip()
        if model is not None:
            rehearsal.model = model
        if resolution is not None:
            rehearsal.resolution = resolution
        if duration_sec is not None:
            rehearsal.duration_sec = duration_sec

        if status != JobStatus.DRAFT:
            check_transition(status, JobStatus.DRAFT, JobKind.REHEARSAL)
            rehearsal.status = str(JobStatus.DRAFT)
            rehearsal.video_url = None
            rehearsal.thumbnail_url = None
            rehearsal.error_message = None
            rehearsal.provider_task_id = None
            rehearsal.token_cost = None
            rehearsal.completed_at = None

    return rehearsal


def delete_rehearsal(session: Session, rehearsal_id: UUID, user_id: str) -> None:
    """Delete a rehearsal that is not holding a reservation."""
    rehearsal = get_rehearsal(session, rehearsal_id, user_id)
    if JobStatus(rehearsal.status) in RESERVATION_HOLDING:
        raise AlreadyTerminalError(rehearsal.id, rehearsal.status)

    with atomic(session):
        session.delete(rehearsal)
    logger.info("rehearsal_deleted", rehearsal_id=str(rehearsal_id))


async def submit_rehearsal(
    session: Session,
    rehearsal_id: UUID,
    user_id: str,
    provider: VideoGenProvider,
) -> RehearsalModel:
    """Reserve and submit a draft or failed rehearsal."""
    rehearsal = get_rehearsal(session, rehearsal_id, user_id)
    _require_submittable(provider, rehearsal.model, rehearsal.resolution)

    cost = segment_cost(rehearsal.model, rehearsal.resolution, rehearsal.duration_sec)
    reservation = ledger.reserve(
        session,
        user_id,
        cost,
        JobKind.REHEARSAL,
        rehearsal.id,
        description=f"Rehearsal video generation: {rehearsal.prompt[:50]}",
    )
    await _submit_reserved(session, rehearsal, reservation, provider)
    return rehearsal


async def sync_rehearsals(
    session: Session,
    user_id: str,
    provider: VideoGenProvider,
) -> list[RehearsalModel]:
    """Sync a user's in-flight rehearsals and return all of them."""
    for rehearsal in list_rehearsals(session, user_id):
        if JobStatus(rehearsal.status) in IN_FLIGHT:
            await sync_job(session, rehearsal, provider)
    return list_rehearsals(session, user_id)


# =============================================================================
# Stale job sweep
# =============================================================================


def sweep_stale_jobs(session: Session, now: datetime | None = None) -> int:
    """Release jobs stuck in submitted/generating past the configured timeout.

    Returns:
        Number of jobs released. Always 0 when the timeout is disabled.
    """
    timeout_minutes = settings.stale_job_timeout_minutes
    if timeout_minutes <= 0:
        return 0

    cutoff = (now or datetime.now(UTC)) - timedelta(minutes=timeout_minutes)
    released = 0

    for model in ledger.JOB_MODELS.values():
        stale = list(
            session.execute(
                select(model).where(
                    model.status.in_([str(s) for s in IN_FLIGHT]),
                    model.updated_at < cutoff,
                )
            ).scalars()
        )
        for job in stale:
            reservation = ledger.reservation_for(job, _job_owner(session, job))
            if reservation is None:
                continue
            result = ledger.release(
                session,
                reservation,
                error_message=f"Generation timed out ({timeout_minutes}min)",
            )
            released += int(result.applied)

    if released:
        logger.warning("stale_jobs_released", count=released, timeout_minutes=timeout_minutes)
    return released
