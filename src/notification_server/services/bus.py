"""Broadcast bus connecting server instances.

A bus moves JSON objects between instances by topic. `InMemoryBus` keeps
everything inside one process and serves single-instance deployments (and
tests that wire several routers together); `RedisBus` uses Redis pub/sub so
every instance subscribed to a topic receives each published message.

Architecture:

    Router A ──publish──┐                ┌──► Router A (ignores own origin)
                        ├── Redis PubSub ┤
    Router B ──publish──┘                └──► Router B
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from notification_server.core.errors import BusUnavailable

logger = logging.getLogger(__name__)

BusMessage = dict[str, Any]
BusHandler = Callable[[str, BusMessage], Awaitable[None]]

TOPIC_PREFIX = "notify:"


class BroadcastBus(ABC):
    """Publish/subscribe transport shared by every server instance."""

    def __init__(self) -> None:
        self._handlers: dict[str, set[BusHandler]] = defaultdict(set)

    async def start(self) -> None:
        """Open any underlying connections."""

    async def close(self) -> None:
        """Release underlying connections."""

    @abstractmethod
    async def publish(self, topic: str, message: BusMessage) -> None:
        """Send `message` to every subscriber of `topic`."""

    async def subscribe(self, topic: str, handler: BusHandler) -> None:
        """Register `handler` for messages on `topic`."""
        self._handlers[topic].add(handler)

    async def unsubscribe(self, topic: str, handler: BusHandler) -> None:
        """Remove `handler` from `topic`."""
        handlers = self._handlers.get(topic)
        if handlers is None:
            return
        handlers.discard(handler)
        if not handlers:
            self._handlers.pop(topic, None)

    def topics(self) -> set[str]:
        """Return topics with at least one local handler."""
        return set(self._handlers)

    async def _dispatch(self, topic: str, message: BusMessage) -> None:
        for handler in list(self._handlers.get(topic, ())):
            try:
                await handler(topic, message)
            except Exception:
                logger.exception("Bus handler failed for topic %s", topic)


class InMemoryBus(BroadcastBus):
    """Process-local bus; every subscriber in the process sees each message."""

    async def publish(self, topic: str, message: BusMessage) -> None:
        # Round-trip through JSON so subscribers never share mutable state.
        await self._dispatch(topic, json.loads(json.dumps(message)))


class RedisBus(BroadcastBus):
    """Bus backed by Redis pub/sub.

    Topics are namespaced with `notify:` on the wire. The first local handler
    for a topic subscribes the pub/sub connection; the last one to leave
    unsubscribes it. A single reader task fans incoming messages out to the
    local handlers.
    """

    def __init__(self, url: str | None = None, client: Redis | None = None) -> None:
        super().__init__()
        if client is None and url is None:
            raise ValueError("RedisBus needs a url or a client")
        self._redis: Redis = client if client is not None else Redis.from_url(url)
        self._pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        self._reader: asyncio.Task[None] | None = None
        self._deliveries: set[asyncio.Task[None]] = set()
        self._closing = False

    @staticmethod
    def wire_topic(topic: str) -> str:
        return f"{TOPIC_PREFIX}{topic}"

    async def start(self) -> None:
        try:
            await self._redis.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Redis bus unreachable at startup: %s", exc)
            return
        logger.info("Redis bus connected")

    async def close(self) -> None:
        self._closing = True
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        for delivery in list(self._deliveries):
            delivery.cancel()
        await self._pubsub.aclose()
        await self._redis.aclose()

    async def publish(self, topic: str, message: BusMessage) -> None:
        try:
            await self._redis.publish(self.wire_topic(topic), json.dumps(message))
        except (RedisError, OSError) as exc:
            raise BusUnavailable(f"Could not publish to {topic}") from exc

    async def subscribe(self, topic: str, handler: BusHandler) -> None:
        if topic in self._handlers:
            await super().subscribe(topic, handler)
            return
        try:
            await self._pubsub.subscribe(self.wire_topic(topic))
        except (RedisError, OSError) as exc:
            raise BusUnavailable(f"Could not subscribe to {topic}") from exc
        await super().subscribe(topic, handler)
        self._ensure_reader()

    async def unsubscribe(self, topic: str, handler: BusHandler) -> None:
        await super().unsubscribe(topic, handler)
        if topic in self._handlers:
            return
        try:
            await self._pubsub.unsubscribe(self.wire_topic(topic))
        except (RedisError, OSError) as exc:
            logger.warning("Could not unsubscribe from %s: %s", topic, exc)

    def _ensure_reader(self) -> None:
        if self._reader is None or self._reader.done():
            self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        while not self._closing and self._handlers:
            try:
                raw = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except (RedisError, OSError) as exc:
                logger.warning("Redis bus read failed: %s", exc)
                await asyncio.sleep(1.0)
                continue
            if raw is None:
                await asyncio.sleep(0)
                continue
            # A slow local socket must not stall the reader.
            delivery = asyncio.create_task(self.handle_raw(raw))
            self._deliveries.add(delivery)
            delivery.add_done_callback(self._deliveries.discard)

    async def handle_raw(self, raw: dict[str, Any]) -> None:
        """Decode one pub/sub message and dispatch it to local handlers."""
        channel = raw.get("channel")
        data = raw.get("data")
        if isinstance(channel, bytes):
            channel = channel.decode()
        if isinstance(data, bytes):
            data = data.decode()
        if not isinstance(channel, str) or not channel.startswith(TOPIC_PREFIX):
            return
        try:
            message = json.loads(data)
        except (TypeError, json.JSONDecodeError):
            logger.warning("Dropping malformed bus message on %s", channel)
            return
        if not isinstance(message, dict):
            return
        await self._dispatch(channel[len(TOPIC_PREFIX):], message)


def build_bus(redis_url: str | None) -> BroadcastBus:
    """Return the bus for the configured deployment mode."""
    if redis_url:
        return RedisBus(url=redis_url)
    return InMemoryBus()
