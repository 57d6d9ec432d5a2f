"""
Logging middleware for request/response logging.

Logs every HTTP request with timing and records request metrics.
Query strings are never logged: callback URLs carry authorization codes.
"""
import time

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from dripcore.routes.metrics import track_request

logger = structlog.get_logger()

UNMATCHED_ROUTE = "unmatched"


def route_template(request: Request) -> str:
    """Path template of the matched route, so metric labels stay bounded."""
    route = request.scope.get("route")
    return getattr(route, "path", UNMATCHED_ROUTE)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Adds path, route, method, status_code and duration_ms to every request log."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        request_logger = logger.bind(path=request.url.path, method=request.method)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            route = route_template(request)
            track_request(request.method, route, 500, duration)
            request_logger.error(
                "request_failed",
                route=route,
                status_code=500,
                duration_ms=round(duration * 1000, 2),
                error=str(e)
            )
            raise

        duration = time.perf_counter() - start_time
        route = route_template(request)
        track_request(request.method, route, response.status_code, duration)
        request_logger.info(
            "request_completed",
            route=route,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2)
        )

        return response
