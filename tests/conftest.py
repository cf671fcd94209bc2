"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_BROKER_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_RESULT_BACKEND"] = "redis://localhost:6379/1"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["VIDEO_GEN_PROVIDER"] = "stub"
os.environ["PRICE_MARKUP"] = "2"
os.environ["FREE_EPISODE_COUNT"] = "1"
os.environ["STALE_JOB_TIMEOUT_MINUTES"] = "45"

USER_ID = "user-1"


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Session on a fresh in-memory schema."""
    from studio_ledger.db.models import Base
    from studio_ledger.db.session import SessionLocal, engine

    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture(scope="session")
def test_client() -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    from studio_ledger.main import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def video_gen_provider():
    """Get a stub video generation provider."""
    from studio_ledger.adapters.video_gen.stub import StubVideoGenProvider

    return StubVideoGenProvider()


@pytest.fixture
def api_client(
    test_client: TestClient, db_session: Session, video_gen_provider
) -> Generator[TestClient, None, None]:
    """Test client with a fresh schema and a shared stub provider."""
    from studio_ledger.api.deps import get_provider

    app = test_client.app
    app.dependency_overrides[get_provider] = lambda: video_gen_provider
    test_client.headers["X-User-Id"] = USER_ID
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()
        test_client.headers.pop("X-User-Id", None)


@pytest.fixture
def fund(db_session: Session) -> Callable[..., None]:
    """Credit purchased coins to a user."""
    from studio_ledger.services.ledger import add_coins

    def _fund(amount: int, user_id: str = USER_ID) -> None:
        add_coins(db_session, user_id, amount)

    return _fund


@pytest.fixture
def script(db_session: Session):
    """A script owned by the default test user."""
    from studio_ledger.db.models import ScriptModel

    script = ScriptModel(user_id=USER_ID, title="The Heiress Returns", status="draft")
    db_session.add(script)
    db_session.commit()
    return script


@pytest.fixture
def make_segment(db_session: Session, script) -> Callable[..., object]:
    """Create a segment of the test script in a given state."""
    from studio_ledger.db.models import VideoSegmentModel

    counter = {"index": 0}

    def _make(
        status: str = "pending",
        model: str = "seedance_2_0",
        resolution: str = "720p",
        duration_sec: int = 10,
        episode_num: int = 1,
    ) -> VideoSegmentModel:
        segment = VideoSegmentModel(
            script_id=script.id,
            episode_num=episode_num,
            segment_index=counter["index"],
            prompt=f"Shot {counter['index']}",
            model=model,
            resolution=resolution,
            duration_sec=duration_sec,
            status=status,
        )
        counter["index"] += 1
        db_session.add(segment)
        db_session.commit()
        return segment

    return _make


@pytest.fixture
def episodes(db_session: Session) -> list:
    """A series with three episodes, each costing 10 coins to unlock."""
    from studio_ledger.db.models import EpisodeModel, SeriesModel

    series = SeriesModel(title="Midnight Contract")
    db_session.add(series)
    db_session.flush()
    rows = [
        EpisodeModel(series_id=series.id, episode_num=n, title=f"Episode {n}", unlock_cost=10)
        for n in (1, 2, 3)
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows
