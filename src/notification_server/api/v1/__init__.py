"""Version 1 API endpoints."""

from .endpoints import socket_router, system_router, webhook_router

__all__ = ["socket_router", "system_router", "webhook_router"]
