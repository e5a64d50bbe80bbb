"""Wiring of the core services for one server instance."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from notification_server.core.security import IdentityVerifier
from notification_server.core.settings import Settings
from notification_server.services.bus import BroadcastBus, build_bus
from notification_server.services.ledger import DeliveryLedger
from notification_server.services.notifier import NotificationService
from notification_server.services.ratelimit import RateLimiter, build_http_limiter, build_socket_limiter
from notification_server.services.router import ChannelRouter
from notification_server.services.webhook import WebhookIngestion


@dataclass
class ServiceContainer:
    """Everything a request or connection handler needs."""

    settings: Settings
    verifier: IdentityVerifier
    http_limiter: RateLimiter
    socket_limiter: RateLimiter
    ledger: DeliveryLedger
    bus: BroadcastBus
    router: ChannelRouter
    notifier: NotificationService
    webhook: WebhookIngestion
    started_at: float


def build_services(
    settings: Settings,
    session_factory: sessionmaker[Session],
    bus: BroadcastBus | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> ServiceContainer:
    """Construct the services for the given settings."""
    bus = bus if bus is not None else build_bus(settings.redis_url)
    ledger = DeliveryLedger(session_factory)
    router = ChannelRouter(bus, settings.instance_id)
    notifier = NotificationService(ledger, router)
    return ServiceContainer(
        settings=settings,
        verifier=IdentityVerifier(settings.jwt_secret, settings.jwt_algorithm),
        http_limiter=build_http_limiter(settings, clock),
        socket_limiter=build_socket_limiter(settings, clock),
        ledger=ledger,
        bus=bus,
        router=router,
        notifier=notifier,
        webhook=WebhookIngestion(notifier, settings.webhook_api_key),
        started_at=time.monotonic(),
    )
