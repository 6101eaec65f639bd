"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import FastAPI

from gatoryde.auth.router import router as auth_router
from gatoryde.bookings.router import router as bookings_router
from gatoryde.bookings.service import BookingLifecycleManager
from gatoryde.config import Settings, get_settings
from gatoryde.database import close_db, init_db
from gatoryde.drivers.router import router as drivers_router
from gatoryde.health.router import router as health_router
from gatoryde.middleware import setup_middleware
from gatoryde.notifications.dispatcher import NotificationDispatcher
from gatoryde.notifications.notifier import Notifier
from gatoryde.notifications.providers import NotificationTransport, create_transport
from gatoryde.notifications.queue import NotificationQueue
from gatoryde.notifications.router import router as notifications_router
from gatoryde.redis_client import close_redis, init_redis
from gatoryde.rides.router import router as rides_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(settings.redis_url, settings.redis_max_connections)

    dispatcher: NotificationDispatcher = app.state.dispatcher
    if settings.notifications_enabled:
        dispatcher.start()
    else:
        logger.info("notification_dispatcher_disabled")

    yield

    await dispatcher.stop()
    await close_db()
    await close_redis()


def build_services(app: FastAPI, settings: Settings, transport: NotificationTransport | None = None) -> None:
    """Create the per-process queue, dispatcher and booking manager on ``app.state``."""
    queue = NotificationQueue(
        max_attempts=settings.notification_max_attempts,
        retry_delays=settings.notification_retry_delays_seconds,
    )
    transport = transport or create_transport(settings)
    app.state.notification_queue = queue
    app.state.transport = transport
    app.state.dispatcher = NotificationDispatcher(
        queue,
        transport,
        interval_seconds=settings.notification_interval_seconds,
        batch_size=settings.notification_batch_size,
        processing_lease=timedelta(seconds=settings.notification_processing_lease_seconds),
        dead_letter_retention=timedelta(days=settings.dead_letter_retention_days),
        maintenance_interval_seconds=settings.notification_maintenance_interval_seconds,
    )
    app.state.bookings = BookingLifecycleManager(Notifier(queue), settings=settings)


def create_app(transport: NotificationTransport | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="GatoRyde API",
        description="Backend API for GatoRyde, student carpooling with shared fares",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    build_services(app, settings, transport)
    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(drivers_router)
    app.include_router(rides_router)
    app.include_router(bookings_router)
    app.include_router(notifications_router)

    return app


app = create_app()
