"""One log line per HTTP request.

Every rendering-layer intent arrives as a request, so these lines double as
the audit trail for mutations. The uid set by the auth dependency is attached
when the request was authenticated.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from chatsync.core.logging import env_bool

logger = logging.getLogger("chatsync.request")

# Polled by load balancers
_QUIET_PATHS = frozenset({"/health"})


def _level_for(request: Request, status_code: int | None) -> int:
    if status_code is None or status_code >= 500:
        return logging.ERROR
    if request.url.path in _QUIET_PATHS:
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.perf_counter()
        status_code: int | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000.0, 2)
            logger.log(
                _level_for(request, status_code),
                "%s %s -> %s (%.2fms)",
                request.method,
                request.url.path,
                status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                    "client_ip": request.client.host if request.client else None,
                    "uid": getattr(request.state, "uid", None),
                },
            )


def add_request_logging_middleware(app: FastAPI) -> None:
    """Attach the middleware unless LOG_REQUESTS is false."""
    if env_bool("LOG_REQUESTS", default=True):
        app.add_middleware(RequestLoggingMiddleware)
