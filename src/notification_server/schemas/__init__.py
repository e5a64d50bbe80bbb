"""Pydantic schemas for API payloads."""

from .notification import (
    NotificationPush,
    SendNotificationRequest,
    SocketFrame,
    WebhookNotifyRequest,
)

__all__ = [
    "NotificationPush",
    "SendNotificationRequest",
    "SocketFrame",
    "WebhookNotifyRequest",
]
