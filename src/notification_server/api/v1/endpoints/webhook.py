"""Webhook endpoint for server-to-server notifications."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from notification_server.api.dependencies import ServicesDep
from notification_server.core.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/notify")
async def webhook_notify(request: Request, services: ServicesDep) -> JSONResponse:
    """Deliver a notification on behalf of a trusted backend."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"errors": [{"loc": ["body"], "msg": "Invalid JSON", "type": "json_invalid"}]},
        )

    try:
        await services.webhook.notify(body)
    except ValidationError as exc:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"errors": exc.errors})
    except StorageError:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )
    return JSONResponse(status_code=status.HTTP_200_OK, content={"success": True})
