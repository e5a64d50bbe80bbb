"""HTTP middleware for per-origin rate limiting."""

from __future__ import annotations

import logging
import math

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from notification_server.services.ratelimit import Denied

logger = logging.getLogger(__name__)

RATE_LIMITED_PREFIXES = ("/api/", "/webhook/")


def client_address(request: Request) -> str:
    """Return the origin address used as the HTTP rate limit key."""
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class HttpRateLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests from an origin that exhausted its window."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(RATE_LIMITED_PREFIXES):
            return await call_next(request)

        limiter = request.app.state.services.http_limiter
        decision = limiter.admit(client_address(request))
        if isinstance(decision, Denied):
            retry_after = math.ceil(decision.retry_after)
            logger.debug("Rate limited %s for %ss", client_address(request), retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Too many requests, please try again later",
                    "retryAfter": retry_after,
                },
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
