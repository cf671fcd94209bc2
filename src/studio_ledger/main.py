"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studio_ledger import __version__
from studio_ledger.api.deps import http_error
from studio_ledger.api.routes import admin, episodes, health, pricing, rehearsals, tokens, video
from studio_ledger.config import settings
from studio_ledger.domain.errors import LedgerError
from studio_ledger.logging import bind_context, clear_context, get_logger, setup_logging

setup_logging("api")
logger = get_logger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Verify the ledger database on startup."""
    logger.info(
        "ledger_api_starting",
        version=__version__,
        provider=settings.video_gen_provider,
        free_episodes=settings.free_episode_count,
    )

    try:
        from studio_ledger.db.session import init_db

        init_db()
    except Exception as e:
        # /health/ready reports the database as down
        logger.error("ledger_database_unavailable", error=str(e))

    yield

    logger.info("ledger_api_stopped")


app = FastAPI(
    title="Studio Ledger",
    description="Coin ledger and metered video generation for an AI short-drama studio",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag ledger events logged during a request with the caller and route."""
    clear_context()
    bind_context(
        user_id=request.headers.get("x-user-id") or None,
        method=request.method,
        path=request.url.path,
    )
    try:
        return await call_next(request)
    finally:
        clear_context()


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Map ledger errors that escape a route to their HTTP status."""
    error = http_error(exc)
    logger.warning("ledger_error_unhandled", error_type=type(exc).__name__, error=str(exc))
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


app.include_router(health.router)
for module in (tokens, admin, pricing, video, rehearsals, episodes):
    app.include_router(module.router, prefix=API_PREFIX)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Service name, version and docs location."""
    return {
        "name": "Studio Ledger",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "studio_ledger.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
