"""
FastAPI application entrypoint for the account-linking service.
"""

from __future__ import annotations

from fastapi import FastAPI

from fleetlink.api.routes import router as api_router
from fleetlink.core.config import get_settings
from fleetlink.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="FleetLink",
        version="0.1.0",
        description="Links manufacturer accounts and keeps the local vehicle fleet in sync.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
