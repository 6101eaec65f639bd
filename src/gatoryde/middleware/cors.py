"""Cross-origin access for the GatoRyde web app."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gatoryde.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Browsers may call the API from ``cors_origins`` or any origin matching ``cors_origin_regex``."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit"],
    )
