"""System and transparency endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from notification_server.api.dependencies import ServicesDep

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config(services: ServicesDep) -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets and connection strings.
    """
    settings = services.settings
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "access_token_expire_minutes": settings.access_token_expire_minutes,
        },
        "rate_limits": {
            "http": {
                "window_minutes": settings.http_rate_limit_window,
                "max": settings.http_rate_limit_max,
            },
            "socket": {
                "duration_seconds": settings.socket_rate_limit_duration,
                "points": settings.socket_rate_limit_points,
            },
        },
        "bus": {
            "enabled": settings.bus_enabled,
            "instance_id": settings.instance_id,
        },
    }
