"""Shared API dependencies."""

from typing import Annotated

from fastapi import Depends
from starlette.requests import HTTPConnection

from notification_server.services.container import ServiceContainer


def get_services(connection: HTTPConnection) -> ServiceContainer:
    """Return the services wired for this application instance."""
    services: ServiceContainer = connection.app.state.services
    return services


# Type alias for the service container dependency; works for HTTP and WebSocket routes
ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
