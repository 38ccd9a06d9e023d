"""
FastAPI application entrypoint for the campus Google proxy.
"""

from __future__ import annotations

from fastapi import FastAPI

from campus_proxy import __version__
from campus_proxy.api.routes import router as api_router
from campus_proxy.core.config import get_settings
from campus_proxy.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Campus Google Proxy",
        version=__version__,
        description="Authenticated, paginated access to Google APIs for portal users.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
