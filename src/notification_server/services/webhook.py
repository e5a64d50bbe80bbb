"""Server-to-server notification ingestion."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from notification_server.core.errors import ValidationError
from notification_server.core.security import constant_time_equals
from notification_server.schemas.notification import WebhookNotifyRequest
from notification_server.services.ledger import SYSTEM_SENDER
from notification_server.services.notifier import NotificationService

logger = logging.getLogger(__name__)


class WebhookIngestion:
    """Accept notifications from trusted backends holding the shared key.

    The credential is a static secret compared in constant time; it is not a
    bearer token and never goes through the identity verifier.
    """

    def __init__(self, notifier: NotificationService, api_key: str | None) -> None:
        self._notifier = notifier
        self._api_key = api_key

    def validate(self, body: Any) -> WebhookNotifyRequest:
        """Return the parsed request or raise `ValidationError`."""
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")
        errors: list[dict[str, Any]] = []
        request: WebhookNotifyRequest | None = None
        try:
            request = WebhookNotifyRequest.model_validate(body)
        except PydanticValidationError as exc:
            errors.extend(exc.errors(include_url=False, include_context=False, include_input=False))

        supplied = body.get("apiKey")
        if not constant_time_equals(supplied if isinstance(supplied, str) else None, self._api_key):
            errors.append({"loc": ["apiKey"], "msg": "Invalid value", "type": "value_error"})

        if errors or request is None:
            raise ValidationError("Invalid webhook request", errors)
        return request

    async def notify(self, body: Any) -> int | None:
        """Validate `body` and deliver it as a system notification.

        Raises:
            ValidationError: Malformed body or wrong credential; nothing was stored or published.
            StorageError: The ledger write failed.
        """
        request = self.validate(body)
        notification_id = await self._notifier.send(SYSTEM_SENDER, request.recipient_id, request.message)
        logger.info("Webhook notification %s queued for %s", notification_id, request.recipient_id)
        return notification_id
