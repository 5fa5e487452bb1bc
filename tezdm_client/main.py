"""
FastAPI application entrypoint for the TezDM companion service.
"""

from __future__ import annotations

from fastapi import FastAPI

from tezdm_client import __version__
from tezdm_client.api.routes import router as api_router
from tezdm_client.core.config import get_settings
from tezdm_client.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="TezDM Client",
        version=__version__,
        description="Local API driving the TezDM OTP session and account connections.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
