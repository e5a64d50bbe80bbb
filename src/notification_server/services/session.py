"""Per-connection session state machine.

    Connecting ──verify──► Admitted ──rate limit──► Active ──disconnect──► Closed
        │                      │
        └──────► Rejected ◄────┘

Admission runs the identity verifier and the socket-scope rate limiter. An
active session joins its identity's channel, replays undelivered
notifications and then serves `send_notification` events. Live pushes that
arrive while the replay is still running are buffered and flushed after the
backlog, so a recipient never sees a fresh notification before older ones.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from notification_server.core.errors import AuthenticationError, RateLimitExceeded, StorageError
from notification_server.core.security import IdentityVerifier, Rejected, VerifiedIdentity
from notification_server.db.time import utcnow
from notification_server.schemas.notification import SendNotificationRequest
from notification_server.services.ledger import DeliveryLedger
from notification_server.services.notifier import NotificationService
from notification_server.services.ratelimit import Denied, RateLimiter, socket_rate_limit_key
from notification_server.services.router import ChannelRouter, channel_for

logger = logging.getLogger(__name__)

PUSH_EVENT = "new_notification"
SEND_EVENT = "send_notification"

Emit = Callable[[str, dict[str, Any]], Awaitable[None]]


class SessionState(str, Enum):
    """Lifecycle states of a connection."""

    CONNECTING = "connecting"
    ADMITTED = "admitted"
    ACTIVE = "active"
    CLOSED = "closed"
    REJECTED = "rejected"


class ConnectionSession:
    """Drive one connection from admission to cleanup."""

    def __init__(
        self,
        connection_id: str,
        emit: Emit,
        *,
        verifier: IdentityVerifier,
        limiter: RateLimiter,
        ledger: DeliveryLedger,
        router: ChannelRouter,
        notifier: NotificationService,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.connection_id = connection_id
        self.state = SessionState.CONNECTING
        self.identity: VerifiedIdentity | None = None
        self._emit = emit
        self._verifier = verifier
        self._limiter = limiter
        self._ledger = ledger
        self._router = router
        self._notifier = notifier
        self._now = now
        self._replaying = False
        self._pending: list[dict[str, Any]] = []
        self._replayed: set[int] = set()
        self._counted = False

    @property
    def user_id(self) -> str | None:
        return self.identity.user_id if self.identity else None

    @property
    def channel(self) -> str | None:
        return channel_for(self.user_id) if self.user_id else None

    @property
    def rate_limit_key(self) -> str:
        return socket_rate_limit_key(self.user_id, self.connection_id)

    async def start(self, credential: str | None) -> None:
        """Authenticate, admit and activate the connection.

        Raises:
            AuthenticationError: The credential was rejected.
            RateLimitExceeded: The identity exhausted its socket window.
        """
        self.authenticate(credential)
        await self.admit()
        await self.replay()

    def authenticate(self, credential: str | None) -> VerifiedIdentity:
        """Connecting → Admitted, or Rejected on a bad credential."""
        self._require(SessionState.CONNECTING)
        outcome = self._verifier.verify(credential)
        if isinstance(outcome, Rejected):
            self.state = SessionState.REJECTED
            raise AuthenticationError(outcome.reason)
        self.identity = outcome
        self.state = SessionState.ADMITTED
        return outcome

    async def admit(self) -> None:
        """Admitted → Active: rate limit, record the connection and join its channel.

        Live pushes are held back until `replay` has run.
        """
        self._require(SessionState.ADMITTED)
        decision = self._limiter.admit(self.rate_limit_key)
        if isinstance(decision, Denied):
            self.state = SessionState.REJECTED
            raise RateLimitExceeded(decision.retry_after)
        self._counted = True

        assert self.user_id is not None and self.channel is not None
        try:
            await self._ledger.open_connection(self.connection_id, self.user_id, self._now())
        except StorageError:
            logger.warning("Connection %s served without a connection record", self.connection_id)

        self._replaying = True
        await self._router.join(self.connection_id, self.channel, self._deliver_live)
        self.state = SessionState.ACTIVE
        logger.info("User %s connected on %s", self.user_id, self.connection_id)

    async def replay(self) -> None:
        """Emit the undelivered backlog, then any live pushes held meanwhile."""
        self._require(SessionState.ACTIVE)
        assert self.user_id is not None
        try:
            backlog = await self._ledger.fetch_undelivered(self.user_id)
        except StorageError:
            backlog = []
        for record in backlog:
            await self._emit_push(record.to_push())
            self._replayed.add(record.id)

        while self._pending:
            payload = self._pending.pop(0)
            if payload.get("id") in self._replayed:
                continue
            await self._emit_push(payload)
        self._replaying = False
        if backlog:
            logger.info("Replayed %d notifications to %s", len(backlog), self.user_id)

    async def _deliver_live(self, payload: dict[str, Any]) -> None:
        if self.state is SessionState.CLOSED:
            return
        # A publish can trail the replay of the same row.
        if payload.get("id") in self._replayed:
            return
        if self._replaying:
            self._pending.append(payload)
            return
        await self._emit_push(payload)

    async def _emit_push(self, payload: dict[str, Any]) -> None:
        await self._emit(PUSH_EVENT, payload)
        notification_id = payload.get("id")
        if notification_id is None:
            return
        try:
            await self._ledger.mark_delivered(int(notification_id), self._now())
        except StorageError:
            logger.warning("Notification %s emitted but not marked delivered", notification_id)

    async def handle_event(self, event: str, data: Any) -> dict[str, Any]:
        """Dispatch one inbound event and return its acknowledgement."""
        if event == SEND_EVENT:
            return await self.handle_send(data)
        return {"error": "Unknown event"}

    async def handle_send(self, data: Any) -> dict[str, Any]:
        """Process a `send_notification` request; never raises."""
        if self.state is not SessionState.ACTIVE or self.user_id is None:
            return {"error": "Connection is not active"}

        decision = self._limiter.admit(self.rate_limit_key)
        if isinstance(decision, Denied):
            return {
                "error": "Too many requests, please try again later",
                "retryAfter": math.ceil(decision.retry_after),
            }

        if not isinstance(data, dict) or not data.get("recipientId") or not data.get("message"):
            return {"error": "Missing required fields"}
        try:
            request = SendNotificationRequest.model_validate(data)
        except PydanticValidationError as exc:
            return {"error": "Invalid notification", "details": exc.errors(include_url=False, include_context=False)}

        try:
            await self._notifier.send(
                self.user_id,
                request.recipient_id,
                request.message,
                origin_connection_id=self.connection_id,
            )
        except StorageError:
            return {"error": "Internal server error"}
        except Exception:
            logger.exception("Notification error on %s", self.connection_id)
            return {"error": "Internal server error"}
        return {"success": True}

    async def close(self) -> None:
        """Run the mandatory cleanup and move to Closed.

        Each step runs even if an earlier one fails. A session that failed
        part way through admission releases whatever it had acquired.
        """
        previous = self.state
        if previous in (SessionState.CLOSED, SessionState.REJECTED, SessionState.CONNECTING):
            return
        self.state = SessionState.CLOSED
        try:
            if self.channel is not None:
                await self._router.leave(self.connection_id, self.channel)
        except Exception:
            logger.exception("Leaving channel failed for %s", self.connection_id)
        finally:
            if self._counted:
                self._limiter.evict(self.rate_limit_key)
            try:
                await self._ledger.close_connection(self.connection_id, self._now())
            except StorageError:
                logger.warning("Disconnect of %s not recorded", self.connection_id)
        logger.info("User %s disconnected from %s", self.user_id, self.connection_id)

    def _require(self, expected: SessionState) -> None:
        if self.state is not expected:
            raise RuntimeError(f"Session {self.connection_id} is {self.state.value}, expected {expected.value}")
