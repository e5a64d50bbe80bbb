"""Durable record of notifications and connection lifecycle events.

The ledger owns the definition of "delivered": a notification is delivered
once its `delivered_at` column is set, which happens at most once per row.
Every public method is a coroutine; the blocking SQLAlchemy work runs in the
threadpool so a slow database never stalls other connections.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from notification_server.core.errors import StorageError
from notification_server.db.time import isoformat, utcnow
from notification_server.models import ConnectionLog, Notification
from notification_server.schemas.notification import NotificationPush

logger = logging.getLogger(__name__)

T = TypeVar("T")

SYSTEM_SENDER = "system"


@dataclass(frozen=True)
class NotificationRecord:
    """Detached, read-only view of a stored notification."""

    id: int
    sender_id: str
    recipient_id: str
    message: str
    socket_id: str | None
    created_at: datetime
    delivered_at: datetime | None

    @classmethod
    def from_model(cls, row: Notification) -> "NotificationRecord":
        return cls(
            id=row.id,
            sender_id=row.sender_id,
            recipient_id=row.recipient_id,
            message=row.message,
            socket_id=row.socket_id,
            created_at=row.created_at,
            delivered_at=row.delivered_at,
        )

    def to_push(self) -> dict[str, Any]:
        """Return the `new_notification` payload for this record."""
        return NotificationPush(
            id=self.id,
            message=self.message,
            sender_id=self.sender_id,
            timestamp=isoformat(self.created_at),
        ).model_dump(by_alias=True)


class DeliveryLedger:
    """Store notifications and connection records behind a session factory."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    async def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        def _in_session() -> T:
            with self._session_factory() as session:
                try:
                    result = work(session)
                    session.commit()
                    return result
                except SQLAlchemyError:
                    session.rollback()
                    raise

        try:
            return await run_in_threadpool(_in_session)
        except SQLAlchemyError as exc:
            logger.error("Ledger %s failed: %s", operation, exc, exc_info=True)
            raise StorageError(f"Ledger {operation} failed") from exc

    async def record(
        self,
        sender_id: str,
        recipient_id: str,
        message: str,
        origin_connection_id: str | None = None,
    ) -> int:
        """Persist a new undelivered notification and return its id."""

        def _insert(session: Session) -> int:
            row = Notification(
                sender_id=sender_id,
                recipient_id=recipient_id,
                message=message,
                socket_id=origin_connection_id,
                created_at=utcnow(),
            )
            session.add(row)
            session.flush()
            return row.id

        return await self._run("record", _insert)

    async def fetch_undelivered(self, recipient_id: str) -> list[NotificationRecord]:
        """Return the recipient's undelivered notifications in creation order."""

        def _select(session: Session) -> list[NotificationRecord]:
            rows = session.scalars(
                select(Notification)
                .where(
                    Notification.recipient_id == recipient_id,
                    Notification.delivered_at.is_(None),
                )
                .order_by(Notification.created_at, Notification.id)
            ).all()
            return [NotificationRecord.from_model(row) for row in rows]

        return await self._run("fetch_undelivered", _select)

    async def mark_delivered(self, notification_id: int, delivered_at: datetime | None = None) -> bool:
        """Set the delivery timestamp unless it is already set.

        Returns True when this call performed the transition.
        """
        stamp = delivered_at or utcnow()

        def _update(session: Session) -> bool:
            result = session.execute(
                update(Notification)
                .where(
                    Notification.id == notification_id,
                    Notification.delivered_at.is_(None),
                )
                .values(delivered_at=stamp)
            )
            return bool(result.rowcount)

        return await self._run("mark_delivered", _update)

    async def get(self, notification_id: int) -> NotificationRecord | None:
        """Return a single notification by id."""

        def _get(session: Session) -> NotificationRecord | None:
            row = session.get(Notification, notification_id)
            return NotificationRecord.from_model(row) if row is not None else None

        return await self._run("get", _get)

    async def open_connection(
        self,
        connection_id: str,
        user_id: str,
        connected_at: datetime | None = None,
    ) -> None:
        """Record an admitted connection."""

        def _insert(session: Session) -> None:
            session.add(
                ConnectionLog(
                    socket_id=connection_id,
                    user_id=user_id,
                    connected_at=connected_at or utcnow(),
                )
            )

        await self._run("open_connection", _insert)

    async def close_connection(self, connection_id: str, disconnected_at: datetime | None = None) -> None:
        """Close the open record for `connection_id`."""
        stamp = disconnected_at or utcnow()

        def _update(session: Session) -> None:
            session.execute(
                update(ConnectionLog)
                .where(
                    ConnectionLog.socket_id == connection_id,
                    ConnectionLog.disconnected_at.is_(None),
                )
                .values(disconnected_at=stamp)
            )

        await self._run("close_connection", _update)

    async def open_connections(self, user_id: str) -> list[str]:
        """Return connection ids currently recorded as open for `user_id`."""

        def _select(session: Session) -> list[str]:
            return list(
                session.scalars(
                    select(ConnectionLog.socket_id).where(
                        ConnectionLog.user_id == user_id,
                        ConnectionLog.disconnected_at.is_(None),
                    )
                ).all()
            )

        return await self._run("open_connections", _select)
