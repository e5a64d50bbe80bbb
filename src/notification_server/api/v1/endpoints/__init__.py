"""API endpoint modules for version 1."""

from .socket import router as socket_router
from .system import router as system_router
from .webhook import router as webhook_router

__all__ = ["socket_router", "system_router", "webhook_router"]
