"""
FastAPI middleware for observability.

Correlation ID and request logging middleware.

Dependencies: fastapi, starlette, backup_pipeline.observability
System role: Request/response observability injection
"""

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from backup_pipeline.observability.correlation import (
    clear_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# Probed every few seconds by orchestrators.
QUIET_PATH_SUFFIXES = ("/health", "/health/db")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log one line per request and one per response.

    Health probes log at DEBUG. For streamed responses the reported time
    covers only the response headers, not the backup behind the stream.
    """

    async def dispatch(self, request: Request, call_next):
        method = request.method
        path = request.url.path
        level = logging.DEBUG if path.endswith(QUIET_PATH_SUFFIXES) else logging.INFO
        started = time.perf_counter()

        logger.log(
            level,
            f"{method} {path}",
            extra={
                "method": method,
                "path": path,
                "client_host": request.client.host if request.client else None,
            },
        )

        try:
            response: Response = await call_next(request)
        except Exception as e:
            logger.exception(
                f"{method} {path} - Exception",
                extra={
                    "method": method,
                    "path": path,
                    "process_time_ms": _elapsed_ms(started),
                    "error_type": type(e).__name__,
                    "error_msg": str(e),
                },
            )
            raise

        logger.log(
            logging.WARNING if response.status_code >= 500 else level,
            f"{method} {path} - {response.status_code}",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "streamed": response.headers.get("content-type", "").startswith(
                    "text/event-stream"
                ),
                "process_time_ms": _elapsed_ms(started),
            },
        )
        return response


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Bind a correlation ID to the request context and echo it back.

    Backup tasks started by the request copy the context, so their log
    lines keep the ID after the response is sent.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = set_correlation_id(request.headers.get(CORRELATION_HEADER))
        try:
            response: Response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
