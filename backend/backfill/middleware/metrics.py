"""
Metrics collection middleware for Prometheus.
"""
import re
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from backfill.core.metrics import (
    errors_total,
    http_requests_total,
    http_request_duration_seconds,
    http_requests_in_progress
)

_UUID_SEGMENT = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


def normalize_path(path: str) -> str:
    """
    Replace site ids and import ids in a path with placeholders.

    /api/v1/sites/12/imports -> /api/v1/sites/{id}/imports
    """
    normalized_parts = []
    for part in path.split('/'):
        if part.isdigit():
            normalized_parts.append('{id}')
        elif _UUID_SEGMENT.match(part):
            normalized_parts.append('{uuid}')
        else:
            normalized_parts.append(part)
    return '/'.join(normalized_parts)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        endpoint = normalize_path(request.url.path)

        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as e:
            errors_total.labels(error_type=type(e).__name__, endpoint=endpoint).inc()
            raise
        finally:
            http_requests_total.labels(method=method, endpoint=endpoint, status_code=status_code).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - start_time
            )
            http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()
