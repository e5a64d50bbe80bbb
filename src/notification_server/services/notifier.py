"""Send path shared by socket `send_notification` events and the webhook."""

from __future__ import annotations

import logging

from notification_server.core.errors import StorageError
from notification_server.db.time import isoformat, utcnow
from notification_server.schemas.notification import NotificationPush
from notification_server.services.ledger import DeliveryLedger
from notification_server.services.router import ChannelRouter, channel_for

logger = logging.getLogger(__name__)


class NotificationService:
    """Record a notification and fan it out to the recipient's channel."""

    def __init__(self, ledger: DeliveryLedger, router: ChannelRouter) -> None:
        self.ledger = ledger
        self.router = router

    async def send(
        self,
        sender_id: str,
        recipient_id: str,
        message: str,
        origin_connection_id: str | None = None,
    ) -> int | None:
        """Persist and publish a notification; return its id.

        A storage failure still publishes the push (without an id, so no
        receiver can mark it delivered) and then re-raises `StorageError`.
        """
        notification_id: int | None = None
        failure: StorageError | None = None
        try:
            notification_id = await self.ledger.record(
                sender_id, recipient_id, message, origin_connection_id
            )
        except StorageError as exc:
            failure = exc

        push = NotificationPush(
            id=notification_id,
            message=message,
            sender_id=sender_id,
            timestamp=isoformat(utcnow()),
        )
        await self.router.publish(channel_for(recipient_id), push.model_dump(by_alias=True))

        if failure is not None:
            raise failure
        logger.debug("Notification %s sent from %s to %s", notification_id, sender_id, recipient_id)
        return notification_id
