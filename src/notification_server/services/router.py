"""Channel-based fan-out across server instances.

Every connection joins the channel named after its identity. Publishing to
a channel delivers to the local members directly and forwards the payload on
the broadcast bus; peer routers deliver it to their own local members. No
instance keeps a directory of where recipients are connected.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from notification_server.core.errors import BusUnavailable
from notification_server.services.bus import BroadcastBus, BusMessage

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "user_"

Payload = dict[str, Any]
Deliver = Callable[[Payload], Awaitable[None]]


def channel_for(user_id: str) -> str:
    """Return the channel name for a recipient identity."""
    return f"{CHANNEL_PREFIX}{user_id}"


class ChannelRouter:
    """Track local channel membership and fan messages out over the bus."""

    def __init__(self, bus: BroadcastBus, instance_id: str) -> None:
        self.bus = bus
        self.instance_id = instance_id
        self._members: dict[str, dict[str, Deliver]] = defaultdict(dict)
        self._subscribed: set[str] = set()
        self._lock = asyncio.Lock()

    async def join(self, connection_id: str, channel: str, deliver: Deliver) -> None:
        """Add a local connection to `channel`.

        A channel whose bus subscription failed is retried on the next join.
        """
        async with self._lock:
            self._members[channel][connection_id] = deliver
            if channel in self._subscribed:
                return
            try:
                await self.bus.subscribe(channel, self._on_bus_message)
            except BusUnavailable as exc:
                logger.warning("Channel %s joined without bus subscription: %s", channel, exc)
                return
            self._subscribed.add(channel)

    async def leave(self, connection_id: str, channel: str) -> None:
        """Remove a local connection from `channel`."""
        async with self._lock:
            members = self._members.get(channel)
            if members is None or connection_id not in members:
                return
            del members[connection_id]
            if members:
                return
            del self._members[channel]
            if channel in self._subscribed:
                self._subscribed.discard(channel)
                await self.bus.unsubscribe(channel, self._on_bus_message)

    def members(self, channel: str) -> set[str]:
        """Return the local connection ids joined to `channel`."""
        return set(self._members.get(channel, {}))

    async def publish(self, channel: str, payload: Payload) -> None:
        """Deliver to local members and forward to every other instance."""
        await self._deliver_local(channel, payload)
        envelope: BusMessage = {"origin": self.instance_id, "payload": payload}
        try:
            await self.bus.publish(channel, envelope)
        except BusUnavailable as exc:
            logger.warning("Cross-instance forward for %s failed: %s", channel, exc)

    async def _on_bus_message(self, channel: str, envelope: BusMessage) -> None:
        if envelope.get("origin") == self.instance_id:
            return
        payload = envelope.get("payload")
        if not isinstance(payload, dict):
            logger.warning("Ignoring bus envelope without payload on %s", channel)
            return
        await self._deliver_local(channel, payload)

    async def _deliver_local(self, channel: str, payload: Payload) -> None:
        targets = list(self._members.get(channel, {}).items())
        if not targets:
            return
        results = await asyncio.gather(
            *(deliver(dict(payload)) for _, deliver in targets),
            return_exceptions=True,
        )
        for (connection_id, _), result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Delivery to connection %s on %s failed: %s", connection_id, channel, result
                )
