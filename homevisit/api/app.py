"""FastAPI application for HomeVisit."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from homevisit import __version__
from homevisit.api.middleware import RequestLoggingMiddleware
from homevisit.api.routes import health, scheduling
from homevisit.config import Settings, get_settings
from homevisit.observability import SchedulingEventLogger
from homevisit.scheduling.booking import BookingService
from homevisit.scheduling.feasibility import FeasibilityEngine
from homevisit.scheduling.locations import LocationResolver
from homevisit.scheduling.ranker import DoctorRanker
from homevisit.scheduling.repository import ScheduleRepository
from homevisit.scheduling.travel import TravelTimeOracle, create_travel_oracle

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[ScheduleRepository] = None,
    oracle: Optional[TravelTimeOracle] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings override (default: environment)
        repository: Schedule store; a SQLAlchemy store is created when omitted
        oracle: Travel-time oracle; built from settings when omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting HomeVisit API")

        db_engine = None
        repo = repository
        if repo is None:
            from homevisit.core.database import (
                create_engine_from_settings,
                create_session_factory,
                init_db,
            )
            from homevisit.core.repository import SqlScheduleRepository

            db_engine = create_engine_from_settings(settings)
            await init_db(db_engine)
            repo = SqlScheduleRepository(create_session_factory(db_engine))

        events = SchedulingEventLogger(
            log_dir=settings.event_log_dir,
            enabled=settings.event_log_enabled,
        )
        travel = oracle or create_travel_oracle(settings, events=events)
        engine = FeasibilityEngine(travel, buffer_minutes=settings.buffer_minutes)
        resolver = LocationResolver.from_settings(repo, settings)

        app.state.settings = settings
        app.state.repository = repo
        app.state.oracle = travel
        app.state.events = events
        app.state.ranker = DoctorRanker(
            repo,
            engine,
            resolver,
            default_duration_minutes=settings.default_duration_minutes,
            concurrency=settings.ranking_concurrency,
            memoize_travel=settings.travel_cache_enabled,
            available_only=settings.ranking_available_only,
        )
        app.state.booking = BookingService(
            repo,
            engine,
            resolver,
            events=events,
            default_duration_minutes=settings.default_duration_minutes,
        )

        logger.info(f"HomeVisit API started (travel backend: {travel.backend})")

        yield

        logger.info("Shutting down HomeVisit API")
        if oracle is None:
            await travel.aclose()
        if db_engine is not None:
            await db_engine.dispose()

    app = FastAPI(
        title="HomeVisit API",
        description="Home-visit appointment feasibility and doctor assignment",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["health"])
    app.include_router(scheduling.router, prefix="/api/v1", tags=["scheduling"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.debug_mode else None,
            },
        )

    return app
