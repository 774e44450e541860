"""
FastAPI application entrypoint for the CleanPlayer credential service.
"""

from __future__ import annotations

from fastapi import FastAPI

from cleanplayer.api.routes import router as api_router
from cleanplayer.core.config import get_settings
from cleanplayer.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="CleanPlayer Spotify Credentials",
        version="0.1.0",
        description="Spotify PKCE login and access-token lifecycle for the web player.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
