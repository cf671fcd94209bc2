"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy import func, select

from studio_ledger import __version__
from studio_ledger.adapters.video_gen.base import VideoGenProvider
from studio_ledger.api.deps import ProviderDep
from studio_ledger.config import settings
from studio_ledger.logging import get_logger

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    components: dict[str, bool] | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    database: bool
    redis: bool
    components: dict[str, bool] | None = None


def _check_database() -> bool:
    """The ledger tables answer a query."""
    from studio_ledger.db.models import UserBalanceModel
    from studio_ledger.db.session import engine

    try:
        with engine.connect() as conn:
            conn.execute(select(func.count()).select_from(UserBalanceModel.__table__))
    except Exception as e:
        logger.error("ledger_database_check_failed", error=str(e))
        return False
    return True


def _check_broker() -> bool:
    """Redis (Celery broker) responds to PING."""
    import redis

    try:
        redis.from_url(settings.redis_url, socket_connect_timeout=2).ping()
    except Exception as e:
        logger.error("broker_check_failed", error=str(e))
        return False
    return True


async def _check_provider(provider: VideoGenProvider) -> bool:
    try:
        return await provider.health_check()
    except Exception as e:
        logger.error("video_gen_check_failed", provider=provider.name, error=str(e))
        return False


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Verifies the API is running and reports how it is configured.",
)
async def health_check() -> HealthResponse:
    """Basic health check - is the API up?

    ``video_gen`` is true when a real provider (not the stub) is configured,
    ``stale_sweep`` when stuck jobs are released automatically.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        components={
            "video_gen": settings.video_gen_provider != "stub",
            "stale_sweep": settings.stale_job_timeout_minutes > 0,
        },
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Checks the ledger database, the task broker and the video provider.",
)
async def readiness_check(provider: ProviderDep) -> ReadinessResponse:
    """Ready when coins can be reserved and jobs can be submitted."""
    database_ok = _check_database()
    redis_ok = _check_broker()
    provider_ok = await _check_provider(provider)

    return ReadinessResponse(
        ready=database_ok and redis_ok and provider_ok,
        database=database_ok,
        redis=redis_ok,
        components={"video_gen": provider_ok},
    )


@router.get(
    "/health/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Simple liveness probe for Kubernetes.",
)
async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness probe - is the process alive?"""
    return {"status": "alive"}
