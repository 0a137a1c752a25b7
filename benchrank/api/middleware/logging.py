"""
Request logging middleware.
"""

import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with status and duration; slow requests at WARNING."""

    def __init__(self, app, slow_request_ms: float = 5000.0):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        level = logging.WARNING if duration_ms > self.slow_request_ms else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} "
            f"status={response.status_code} duration={duration_ms:.1f}ms"
        )
        response.headers["X-Process-Time-Ms"] = f"{duration_ms:.1f}"
        return response
