"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events that build the scheduling core onto app.state, and the v1
API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.meetingsync.config import Settings, get_settings
from src.meetingsync.core.database import close_db, get_session, init_db
from src.meetingsync.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.meetingsync.core.security import hash_password
from src.meetingsync.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.meetingsync.api.v1 import health
from src.meetingsync.api.v1.router import router as v1_router
from src.meetingsync.meetings.directory import MeetingDirectory
from src.meetingsync.meetings.repository import MeetingRepository
from src.meetingsync.meetings.service import MeetingService
from src.meetingsync.providers.repository import ProviderAccountRepository
from src.meetingsync.providers.zoom import ZoomClient
from src.meetingsync.scheduling.capacity import CapacityEvaluator
from src.meetingsync.scheduling.conflicts import ConflictDetector
from src.meetingsync.scheduling.notifier import CapacityNotifier
from src.meetingsync.users.repository import SettingsRepository, UserRepository
from src.meetingsync.users.schemas import UserRole

log = structlog.get_logger(__name__)


def build_components(app: FastAPI, settings: Settings, session_factory=get_session) -> None:
    """Wire repositories, the scheduling core and the provider client onto app.state."""
    user_repository = UserRepository(session_factory)
    meeting_repository = MeetingRepository(session_factory)
    account_repository = ProviderAccountRepository(
        session_factory,
        max_concurrent_meetings=settings.PROVIDER_MAX_CONCURRENT_MEETINGS,
    )

    directory = MeetingDirectory(meeting_repository)
    capacity = CapacityEvaluator(directory, account_repository)
    detector = ConflictDetector(
        directory,
        capacity,
        increment_minutes=settings.SUGGESTION_INCREMENT_MINUTES,
        horizon_days=settings.SUGGESTION_HORIZON_DAYS,
        suggestion_limit=settings.SUGGESTION_LIMIT,
    )
    zoom_client = ZoomClient(
        api_base_url=settings.ZOOM_API_BASE_URL,
        oauth_url=settings.ZOOM_OAUTH_URL,
        default_timezone=settings.ZOOM_DEFAULT_TIMEZONE,
    )

    app.state.user_repository = user_repository
    app.state.settings_repository = SettingsRepository(session_factory)
    app.state.meeting_repository = meeting_repository
    app.state.provider_account_repository = account_repository
    app.state.meeting_directory = directory
    app.state.capacity_evaluator = capacity
    app.state.conflict_detector = detector
    app.state.zoom_client = zoom_client
    app.state.meeting_service = MeetingService(
        meeting_repository, directory, detector, capacity, account_repository, zoom_client
    )
    app.state.capacity_notifier = CapacityNotifier(
        capacity,
        detector,
        directory,
        cache_ttl_seconds=settings.CAPACITY_CACHE_TTL_SECONDS,
        queue_limit=settings.NOTIFICATION_QUEUE_LIMIT,
        lookahead_days=settings.NOTIFIER_LOOKAHEAD_DAYS,
    )


async def seed_initial_admin(users: UserRepository, settings: Settings) -> None:
    """Create the configured admin when the user table is empty."""
    if not settings.INITIAL_ADMIN_EMAIL or not settings.INITIAL_ADMIN_PASSWORD:
        return
    if await users.count_users() > 0:
        return
    await users.create_user(
        email=settings.INITIAL_ADMIN_EMAIL,
        name=settings.INITIAL_ADMIN_NAME,
        hashed_password=hash_password(settings.INITIAL_ADMIN_PASSWORD),
        role=UserRole.admin,
    )
    log.info("startup.admin_seeded", email=settings.INITIAL_ADMIN_EMAIL.lower())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and components on startup, close on shutdown."""
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    build_components(app, settings)
    await seed_initial_admin(app.state.user_repository, settings)
    await app.state.capacity_notifier.initialize()
    log.info("startup.complete", environment=settings.ENVIRONMENT.value)

    yield

    app.state.capacity_notifier.destroy()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MeetingSync API",
        version=settings.APP_VERSION,
        description="Meeting scheduling with room, participant and provider capacity checks",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    # Infrastructure routes stay at the root, everything else under /api/v1
    app.include_router(health.router)
    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
