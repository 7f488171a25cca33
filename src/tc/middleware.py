"""
Coordinator Service Middleware

Request logging with the caller's attempt id, when it sends one.
"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """
    Logs every request with method, path, status and latency.

    An ``X-Attempt-Id`` header is copied to ``request.state.attempt_id`` and
    added to the log records.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        attempt_id = request.headers.get("X-Attempt-Id")
        request.state.attempt_id = attempt_id
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {request.url.path} - Error: {str(e)}",
                extra={
                    "attempt_id": attempt_id,
                    "latency_ms": round((time.time() - start_time) * 1000, 2),
                },
                exc_info=True
            )
            raise

        logger.info(
            f"{request.method} {request.url.path} - Status: {response.status_code}",
            extra={
                "attempt_id": attempt_id,
                "status_code": response.status_code,
                "latency_ms": round((time.time() - start_time) * 1000, 2),
            }
        )
        return response
