"""Notification-related Pydantic schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_MESSAGE_LENGTH = 500


class SendNotificationRequest(BaseModel):
    """Payload of a `send_notification` socket event."""

    recipient_id: str = Field(..., alias="recipientId", min_length=1, max_length=64)
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)

    model_config = ConfigDict(populate_by_name=True)


class WebhookNotifyRequest(BaseModel):
    """Body accepted by `POST /webhook/notify`."""

    recipient_id: str = Field(
        ...,
        alias="recipientId",
        min_length=8,
        max_length=64,
        pattern=r"^[A-Za-z0-9]+$",
        description="Alphanumeric recipient identity",
    )
    message: str = Field(..., max_length=MAX_MESSAGE_LENGTH)
    api_key: str = Field(..., alias="apiKey", description="Static shared webhook credential")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("message", mode="before")
    @classmethod
    def _strip_message(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class NotificationPush(BaseModel):
    """Payload of the `new_notification` push event."""

    id: int | None = None
    message: str
    sender_id: str = Field(..., alias="senderId")
    timestamp: str

    model_config = ConfigDict(populate_by_name=True)


class SocketFrame(BaseModel):
    """Envelope for every frame exchanged on the persistent connection."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)
    id: int | str | None = None
