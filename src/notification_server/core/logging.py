"""Logging setup for the notification server."""

from __future__ import annotations

import logging

from notification_server.core.settings import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=settings.effective_log_level, format=LOG_FORMAT)
    logging.getLogger("notification_server").setLevel(settings.effective_log_level)
