"""Business logic services for the notification server."""

from .bus import BroadcastBus, InMemoryBus, RedisBus
from .container import ServiceContainer, build_services
from .ledger import DeliveryLedger, NotificationRecord
from .notifier import NotificationService
from .ratelimit import Admitted, Denied, RateLimiter, RateLimitScope
from .router import ChannelRouter, channel_for
from .session import ConnectionSession, SessionState
from .webhook import WebhookIngestion

__all__ = [
    "Admitted",
    "BroadcastBus",
    "ChannelRouter",
    "ConnectionSession",
    "DeliveryLedger",
    "Denied",
    "InMemoryBus",
    "NotificationRecord",
    "NotificationService",
    "RateLimitScope",
    "RateLimiter",
    "RedisBus",
    "ServiceContainer",
    "SessionState",
    "WebhookIngestion",
    "build_services",
    "channel_for",
]
