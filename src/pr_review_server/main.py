"""
Review Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and starts/stops the background
workflow workers.

Design Goals
------------
- Deterministic startup
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from .config import settings
from .core.errors import unhandled_exception_handler
from .api import (
    event_routes,
    review_routes,
    health_routes,
)
from .api.dependencies import get_dispatcher, get_step_store


logger = logging.getLogger("review.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="pr-review-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(event_routes.router)
    app.include_router(review_routes.router)

    # --------------------------------------------------------------
    # Startup / Shutdown
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup() -> None:
        """
        Fail-fast configuration validation, then start workflow workers and
        re-enqueue instances interrupted by the previous shutdown.
        """
        logger.info("Starting pr-review-server")

        if not settings.gemini_api_key.get_secret_value():
            raise RuntimeError("gemini_api_key is not configured")
        if not settings.events_jwt_secret.get_secret_value():
            raise RuntimeError("events_jwt_secret is not configured")

        logger.info("Configuration validated successfully")

        dispatcher = get_dispatcher()
        dispatcher.start()
        await dispatcher.recover(get_step_store())

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        """
        Cancel workers. Interrupted instances resume from their last
        committed step on the next startup.
        """
        logger.info("Shutting down pr-review-server")
        await get_dispatcher().stop()

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
