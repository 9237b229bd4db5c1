"""Request logging middleware."""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from facial_signon.core.logging import get_logger

logger = get_logger(__name__)

# Probed every few seconds by orchestrators
QUIET_PATHS = frozenset({"/health", "/health/ready"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and its outcome with timing.

    Query strings are not logged: the relay and verification endpoints carry
    tokens in them.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        log = logger.debug if path in QUIET_PATHS else logger.info

        start_time = time.time()
        log(
            "incoming_request",
            method=request.method,
            path=path,
            client_host=request.client.host if request.client else None,
        )

        response: Response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        log(
            "request_completed",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        return response
