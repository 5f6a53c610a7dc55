"""
Custom FastAPI middleware for the leaveadmin application.

Middleware functions in this module intercept HTTP requests for metrics
collection.
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from leaveadmin.core.metrics import get_http_latency, get_http_requests


async def prometheus_http_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """
    Record Prometheus metrics for HTTP requests.

    Labels use the matched route template rather than the raw path, so ids in
    URLs do not create one timeseries per record.
    """
    start = time.perf_counter()
    response = await call_next(request)
    latency = time.perf_counter() - start

    route = request.scope.get("route")
    endpoint = getattr(route, "path", None) or request.url.path
    method = request.method

    get_http_requests().labels(
        method=method, endpoint=endpoint, status_code=response.status_code
    ).inc()
    get_http_latency().labels(method=method, endpoint=endpoint).observe(latency)

    return response
