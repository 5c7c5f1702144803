"""
Request Logging Middleware

Middleware that:
- Assigns a request_id to each request (honoring an incoming X-Request-ID)
- Logs request start and end with timing
- Propagates request_id to all logs via contextvars
- Records HTTP metrics for Prometheus
"""
import time
import uuid
import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from herald.core.logging_config import set_request_id, clear_request_id, get_request_id, sanitize_log_value
from herald.core.metrics import record_request_metrics

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every HTTP request with timing and a correlation ID.

    The request ID is exposed on ``request.state.request_id`` and echoed in
    the X-Request-ID response header.
    """

    EXCLUDED_PATHS = {'/health', '/metrics', '/docs', '/redoc', '/openapi.json'}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        request_id = sanitize_log_value(incoming, max_length=64) if incoming else str(uuid.uuid4())

        token = set_request_id(request_id)
        request.state.request_id = request_id

        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"
        should_log = path not in self.EXCLUDED_PATHS

        if should_log:
            logger.info(
                "Request started",
                extra={
                    "event_type": "request_start",
                    "method": method,
                    "path": path,
                    "client_ip": client_host,
                }
            )

        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - start_time
            response.headers[REQUEST_ID_HEADER] = request_id

            if should_log:
                log_level = logging.INFO if response.status_code < 400 else logging.WARNING
                if response.status_code >= 500:
                    log_level = logging.ERROR

                logger.log(
                    log_level,
                    "Request completed",
                    extra={
                        "event_type": "request_complete",
                        "method": method,
                        "path": path,
                        "status_code": response.status_code,
                        "response_time_ms": round(elapsed * 1000, 2),
                    }
                )

            record_request_metrics(
                method=method,
                path=path,
                status_code=response.status_code,
                response_time_seconds=elapsed,
            )
            return response

        except Exception as e:
            elapsed = time.perf_counter() - start_time
            logger.error(
                "Request failed with exception",
                extra={
                    "event_type": "request_error",
                    "method": method,
                    "path": path,
                    "response_time_ms": round(elapsed * 1000, 2),
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            record_request_metrics(
                method=method,
                path=path,
                status_code=500,
                response_time_seconds=elapsed,
            )
            raise

        finally:
            clear_request_id(token)


def get_current_request_id() -> str:
    """Current request ID, or "no-request" outside a request context."""
    return get_request_id() or "no-request"
