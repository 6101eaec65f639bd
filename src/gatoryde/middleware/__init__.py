"""Middleware registration."""

from fastapi import FastAPI

from gatoryde.config import Settings
from gatoryde.middleware.cors import setup_cors
from gatoryde.middleware.error_handler import setup_error_handlers
from gatoryde.middleware.logging import setup_logging
from gatoryde.middleware.rate_limit import RateLimitMiddleware
from gatoryde.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers and middleware.

    Starlette runs middleware in reverse-add order, so CORS is added last to
    wrap everything, including 429 responses from the rate limiter.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
