"""
Prometheus metrics for application monitoring.
"""
import time

from fastapi import Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.openmetrics.exposition import generate_latest as generate_latest_openmetrics
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from backend.app.core.logging import bind_request_context


# Request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Business metrics
approval_transitions_total = Counter(
    'approval_transitions_total',
    'Approval workflow transitions',
    ['entity', 'new_status']
)

delivery_schedule_changes_total = Counter(
    'delivery_schedule_changes_total',
    'Product delivery plan mutations',
    ['operation']
)

order_issues_reported_total = Counter(
    'order_issues_reported_total',
    'Order issues reported by customers',
    ['issue_type']
)

catalog_submissions_total = Counter(
    'catalog_submissions_total',
    'Products and market stands created or edited by producers',
    ['entity', 'operation']
)

listing_cache_requests_total = Counter(
    'listing_cache_requests_total',
    'Product listing cache lookups',
    ['result']
)


def _endpoint_label(request: Request) -> str:
    """Route template (e.g. /orders/{order_id}/status) to keep label cardinality bounded."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collects HTTP request metrics and binds request context for structured logs."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        bind_request_context(path=request.url.path, method=request.method)
        start_time = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.time() - start_time
            endpoint = _endpoint_label(request)
            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()
            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(duration)

        return response


def get_metrics_response(openmetrics: bool = False) -> Response:
    """Prometheus (default) or OpenMetrics exposition of all registered metrics."""
    if openmetrics:
        content = generate_latest_openmetrics()
        content_type = "application/openmetrics-text; version=1.0.0; charset=utf-8"
    else:
        content = generate_latest()
        content_type = CONTENT_TYPE_LATEST

    return Response(content=content, media_type=content_type)
