# src/notification_server/init_db.py
"""Create the notification tables in the configured database."""

from notification_server.db.session import create_tables


def init_db() -> None:
    """Initialize the database by creating all tables."""
    create_tables()


if __name__ == "__main__":
    init_db()
    print("Database initialized.")
