"""Main entry point for the ChatterSphere application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from chattersphere.api import (
    communities_router,
    membership_router,
    notifications_router,
    users_router,
    webhooks_router,
)
from chattersphere.core.errors import register_exception_handlers
from chattersphere.core.logconfig import configure_logging
from chattersphere.core.settings import Settings, settings
from chattersphere.db.session import Database

logger = logging.getLogger(__name__)

DESCRIPTION = "Community membership and moderation API"


def create_app(app_settings: Settings = settings) -> FastAPI:
    """Build the FastAPI application together with its database handle."""
    app = FastAPI(
        title=f"{app_settings.app_name} API",
        description=DESCRIPTION,
        version=app_settings.app_version,
        debug=app_settings.debug,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=app_settings.cors_allow_credentials,
        allow_methods=app_settings.cors_allow_methods,
        allow_headers=app_settings.cors_allow_headers,
    )

    # Add GZip middleware for compression
    app.add_middleware(GZipMiddleware)

    register_exception_handlers(app)

    app.state.database = Database(
        app_settings.effective_database_url,
        echo=app_settings.sql_debug,
    )

    # Include API routers
    prefix = app_settings.api_prefix
    app.include_router(communities_router, prefix=prefix)
    app.include_router(membership_router, prefix=prefix)
    app.include_router(notifications_router, prefix=prefix)
    app.include_router(users_router, prefix=prefix)
    app.include_router(webhooks_router, prefix=prefix)

    @app.on_event("startup")
    async def on_startup() -> None:
        configure_logging(app_settings.log_level)
        if app_settings.auto_create_tables:
            app.state.database.create_tables()
        logger.info("%s %s started", app_settings.app_name, app_settings.app_version)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        app.state.database.dispose()

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint to verify the service is running."""
        return {"status": "ok"}

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with basic information about the API."""
        return {
            "name": f"{app_settings.app_name} API",
            "version": app_settings.app_version,
            "description": DESCRIPTION,
            "docs": "/docs",
            "redoc": "/redoc",
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("chattersphere.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
