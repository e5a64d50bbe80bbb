# src/notification_server/models/notification.py
"""Models describing notifications addressed to recipients."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notification_server.db.session import Base
from notification_server.db.time import utcnow


class Notification(Base):
    """A notification recorded for a recipient.

    `delivered_at` moves from NULL to a timestamp exactly once, the first
    time the notification is emitted to one of the recipient's connections.
    Rows are never deleted by the server; retention is handled elsewhere.
    """

    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_recipient_pending", "recipient_id", "delivered_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # Connection that produced the notification; NULL for webhook deliveries.
    socket_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
