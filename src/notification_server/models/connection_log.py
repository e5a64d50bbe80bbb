# src/notification_server/models/connection_log.py
"""Connection lifecycle bookkeeping."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from notification_server.db.session import Base
from notification_server.db.time import utcnow


class ConnectionLog(Base):
    """One row per admitted connection; open while `disconnected_at` is NULL."""

    __tablename__ = "connection_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    socket_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    connected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    disconnected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
