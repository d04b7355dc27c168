"""Request logging for the scheduling API."""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, tagged with a request id.

    The id comes from the caller's ``X-Request-ID`` header when present and
    is echoed back with ``X-Process-Time``. Successful health checks log at
    DEBUG; server errors at WARNING.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed = time.perf_counter() - started
        if response.status_code >= 500:
            level = logging.WARNING
        elif request.url.path.startswith("/health") and response.status_code < 400:
            level = logging.DEBUG
        else:
            level = logging.INFO
        logger.log(
            level,
            f"[{request_id}] {request.method} {request.url.path} -> "
            f"{response.status_code} in {elapsed * 1000:.1f}ms",
        )

        response.headers["X-Process-Time"] = f"{elapsed:.3f}"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
