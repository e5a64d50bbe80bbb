"""Persistent notification connections over WebSocket.

Frames are JSON objects of the form ``{"event": ..., "data": {...}, "id": ...}``.
Clients send ``send_notification`` events and receive ``ack`` replies carrying
the same ``id``; the server pushes ``new_notification`` events.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, WebSocketException, status
from pydantic import ValidationError as PydanticValidationError

from notification_server.api.dependencies import ServicesDep
from notification_server.core.errors import AuthenticationError, RateLimitExceeded
from notification_server.schemas.notification import SocketFrame
from notification_server.services.session import ConnectionSession

logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])

WS_4401_UNAUTHORIZED = 4401
WS_4429_RATE_LIMITED = 4429
ACK_EVENT = "ack"


def _bearer_token(websocket: WebSocket, token: str | None) -> str | None:
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


@router.websocket("/ws")
async def notifications_socket(
    websocket: WebSocket,
    services: ServicesDep,
    token: str | None = Query(default=None),
) -> None:
    """Serve one client connection for its whole lifetime."""
    connection_id = secrets.token_urlsafe(12)
    send_lock = asyncio.Lock()

    async def emit(event: str, data: dict[str, Any], frame_id: Any = None) -> None:
        frame: dict[str, Any] = {"event": event, "data": data}
        if frame_id is not None:
            frame["id"] = frame_id
        async with send_lock:
            await websocket.send_text(json.dumps(frame))

    session = ConnectionSession(
        connection_id,
        emit,
        verifier=services.verifier,
        limiter=services.socket_limiter,
        ledger=services.ledger,
        router=services.router,
        notifier=services.notifier,
    )

    try:
        session.authenticate(_bearer_token(websocket, token))
    except AuthenticationError as exc:
        raise WebSocketException(code=WS_4401_UNAUTHORIZED, reason=str(exc)) from exc

    try:
        try:
            await session.admit()
        except RateLimitExceeded as exc:
            logger.info("Connection refused for %s: rate limited", session.user_id)
            raise WebSocketException(code=WS_4429_RATE_LIMITED, reason=str(exc)) from exc
        except Exception as exc:
            logger.exception("Admission failed on %s", connection_id)
            raise WebSocketException(code=status.WS_1011_INTERNAL_ERROR, reason="Internal server error") from exc

        await websocket.accept()
        await session.replay()
        while True:
            raw = await websocket.receive_text()
            await _handle_frame(session, raw, emit)
    except WebSocketDisconnect:
        pass
    finally:
        await session.close()


async def _handle_frame(
    session: ConnectionSession, raw: str, emit: Callable[..., Awaitable[None]]
) -> None:
    try:
        frame = SocketFrame.model_validate_json(raw)
    except PydanticValidationError:
        await emit(ACK_EVENT, {"error": "Malformed frame"})
        return
    ack = await session.handle_event(frame.event, frame.data)
    await emit(ACK_EVENT, ack, frame.id)
