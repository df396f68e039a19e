"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.error_handling import register_exception_handlers
from app.api.v1 import router as v1_router
from app.api.v1.auth import client_ip
from app.core.config import Settings, get_settings
from app.core.database import SessionLocal
from app.services.auth import DatabaseAuthService
from app.services.bootstrap import seed_defaults
from app.services.cache import CacheService, CostAwareCache
from app.services.rate_limit import RateLimiter
from app.services.scheduler import HousekeepingScheduler
from app.services.tasks import DatabaseTaskService
from app.services.tokens import RefreshRotator, TokenIssuer
from app.services.users import DatabaseUserService

logger = logging.getLogger(__name__)


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Seed default data and run housekeeping jobs for the lifetime of the server."""
    settings: Settings = app.state.settings
    if settings.SEED_DEFAULTS:
        db = app.state.session_factory()
        try:
            seed_defaults(db, settings)
        finally:
            db.close()
    if settings.SCHEDULER_ENABLED:
        app.state.scheduler.start()
    yield
    app.state.scheduler.stop()


def create_app(
    settings: Settings | None = None,
    session_factory: Callable[[], Session] | None = None,
) -> FastAPI:
    """Build the app with its own cache, rate limiters and services stored on app.state."""
    settings = settings or get_settings()
    session_factory = session_factory or SessionLocal
    _configure_logging(settings)

    app = FastAPI(
        title="Taskify API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    cache = CacheService(
        CostAwareCache(
            max_cost=settings.CACHE_MAX_COST,
            num_counters=settings.CACHE_NUM_COUNTERS,
            sample_size=settings.CACHE_SAMPLE_SIZE,
        ),
        query_ttl_seconds=settings.CACHE_QUERY_TTL_SECONDS,
    )
    rate_limiter = RateLimiter(
        settings.RATE_LIMIT_PER_SECOND,
        settings.RATE_LIMIT_BURST,
        idle_seconds=settings.RATE_LIMIT_IDLE_SECONDS,
        name="general",
    )
    auth_limiter = RateLimiter(
        settings.AUTH_RATE_LIMIT_PER_SECOND,
        settings.AUTH_RATE_LIMIT_BURST,
        idle_seconds=settings.RATE_LIMIT_IDLE_SECONDS,
        name="auth",
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.cache_service = cache
    app.state.rate_limiter = rate_limiter
    app.state.auth_limiter = auth_limiter
    app.state.auth_service = DatabaseAuthService(TokenIssuer(settings), RefreshRotator())
    app.state.task_service = DatabaseTaskService(cache)
    app.state.user_service = DatabaseUserService(cache)
    app.state.scheduler = HousekeepingScheduler(
        settings, session_factory, cache, [rate_limiter, auth_limiter]
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_ENV == "dev" else settings.CORS_ORIGINS,
        allow_credentials=settings.APP_ENV != "dev",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if not request.app.state.rate_limiter.allow(client_ip(request)):
            return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})
        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s status=%s duration_ms=%.1f client=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
            client_ip(request),
        )
        return response

    register_exception_handlers(app)
    app.include_router(v1_router, prefix=settings.API_V1_PREFIX)

    @app.get("/")
    def root() -> dict[str, str]:
        """Root route; minimal payload for discovery."""
        return {"message": "Taskify API"}

    return app


app = create_app()
