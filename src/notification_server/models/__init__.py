"""SQLAlchemy models for the notification server."""

from .connection_log import ConnectionLog
from .notification import Notification

__all__ = ["ConnectionLog", "Notification"]
