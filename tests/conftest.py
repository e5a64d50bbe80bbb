# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from datetime import timedelta
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from notification_server.core.security import IdentityVerifier, create_access_token
from notification_server.core.settings import Settings
from notification_server.db.session import Base, create_tables, drop_tables
from notification_server.main import create_app
from notification_server.models import Notification
from notification_server.services.bus import InMemoryBus
from notification_server.services.ledger import DeliveryLedger
from notification_server.services.notifier import NotificationService
from notification_server.services.ratelimit import RateLimiter, RateLimitScope
from notification_server.services.router import ChannelRouter

TEST_DB_URL = "sqlite://"
WEBHOOK_KEY = "test-webhook-key"


class FakeClock:
    """Manually advanced clock for window and expiry tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingEmitter:
    """Collects frames a session would write to its transport."""

    def __init__(self) -> None:
        self.frames: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, event: str, data: dict[str, Any]) -> None:
        self.frames.append((event, data))

    def pushes(self) -> list[dict[str, Any]]:
        return [data for event, data in self.frames if event == "new_notification"]


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    try:
        yield engine
    finally:
        drop_tables(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[sessionmaker[Session]]:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        jwt_secret="test-secret",
        webhook_api_key=WEBHOOK_KEY,
        instance_id="instance-a",
        socket_rate_limit_points=5,
        socket_rate_limit_duration=60,
        http_rate_limit_max=100,
        http_rate_limit_window=15,
        redis_url=None,
        auto_create_tables=False,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ledger(session_factory: sessionmaker[Session]) -> DeliveryLedger:
    return DeliveryLedger(session_factory)


@pytest.fixture()
def bus() -> InMemoryBus:
    return InMemoryBus()


@pytest.fixture()
def router(bus: InMemoryBus) -> ChannelRouter:
    return ChannelRouter(bus, "instance-a")


@pytest.fixture()
def peer_router(bus: InMemoryBus) -> ChannelRouter:
    """A second instance attached to the same broadcast bus."""
    return ChannelRouter(bus, "instance-b")


@pytest.fixture()
def notifier(ledger: DeliveryLedger, router: ChannelRouter) -> NotificationService:
    return NotificationService(ledger, router)


@pytest.fixture()
def socket_limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(RateLimitScope.SOCKET_IDENTITY, ceiling=5, window_seconds=60, clock=clock)


@pytest.fixture()
def verifier(test_settings: Settings) -> IdentityVerifier:
    return IdentityVerifier(test_settings.jwt_secret, test_settings.jwt_algorithm)


@pytest.fixture()
def make_token(test_settings: Settings) -> Callable[..., str]:
    def _make(user_id: str, expires_in: timedelta | None = None) -> str:
        return create_access_token(user_id, test_settings, expires_in=expires_in)

    return _make


@pytest.fixture()
def app(test_settings: Settings, session_factory: sessionmaker[Session]) -> FastAPI:
    return create_app(test_settings, session_factory=session_factory)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def notifications(session_factory: sessionmaker[Session]) -> Callable[[], list[Notification]]:
    """Return a callable reading every stored notification in id order."""

    def _read() -> list[Notification]:
        with session_factory() as session:
            return list(session.query(Notification).order_by(Notification.id).all())

    return _read
