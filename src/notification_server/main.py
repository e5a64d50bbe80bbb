# src/notification_server/main.py
"""Main entry point for the notification server."""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from notification_server.api.middleware import HttpRateLimitMiddleware
from notification_server.api.v1 import socket_router, system_router, webhook_router
from notification_server.core.logging import configure_logging
from notification_server.core.settings import Settings
from notification_server.core.settings import settings as default_settings
from notification_server.db.session import SessionLocal, create_tables
from notification_server.services.bus import BroadcastBus
from notification_server.services.container import ServiceContainer, build_services

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
    bus: BroadcastBus | None = None,
) -> FastAPI:
    """Build the FastAPI application and its services."""
    settings = settings or default_settings
    configure_logging(settings)

    owns_engine = session_factory is None
    if session_factory is None:
        session_factory = SessionLocal
    bind = session_factory.kw.get("bind")

    app = FastAPI(
        title=settings.app_name,
        description="Realtime notification delivery with durable replay",
        version=settings.app_version,
    )
    app.state.services = build_services(settings, session_factory, bus=bus)

    app.add_middleware(HttpRateLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(system_router, prefix="/api/v1")
    app.include_router(webhook_router)
    app.include_router(socket_router)

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.on_event("startup")
    async def on_startup() -> None:
        services: ServiceContainer = app.state.services
        if settings.auto_create_tables and bind is not None:
            create_tables(bind)
        await services.bus.start()
        logger.info(
            "Server running in %s mode on port %s (instance %s)",
            settings.environment,
            settings.port,
            settings.instance_id,
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        services: ServiceContainer = app.state.services
        logger.info("Shutting down gracefully")
        await services.bus.close()
        if owns_engine and bind is not None:
            bind.dispose()
        logger.info("Server closed")

    @app.get("/health")
    async def health_check() -> dict[str, object]:
        """Health check endpoint to verify the service is running."""
        services: ServiceContainer = app.state.services
        return {
            "status": "ok",
            "uptime": time.monotonic() - services.started_at,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("notification_server.main:app", host="0.0.0.0", port=default_settings.port)
