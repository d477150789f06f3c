"""Prometheus metrics for the application."""

import time

from prometheus_client import Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# --- Metrics ---

APP_INFO = Info("app", "Autoposter AI application info")
APP_INFO.info({"version": "0.1.0", "name": "autoposter_ai"})

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

AI_GENERATION_REQUESTS = Counter(
    "ai_generation_requests_total",
    "Total AI generation requests",
    ["provider", "capability", "status"],
)

AI_GENERATION_DURATION = Histogram(
    "ai_generation_duration_seconds",
    "AI generation duration in seconds",
    ["provider", "capability"],
    # Video polling can take minutes
    buckets=[0.5, 1, 2.5, 5, 10, 30, 60, 120, 300, 600],
)


def record_generation(provider: str, capability: str, status: str, duration: float) -> None:
    AI_GENERATION_REQUESTS.labels(provider=provider, capability=capability, status=status).inc()
    AI_GENERATION_DURATION.labels(provider=provider, capability=capability).observe(duration)


# --- Middleware ---


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect HTTP request metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = request.url.path  # No dynamic segments in this API

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
        REQUEST_DURATION.labels(method=method, path=path).observe(duration)

        return response


def metrics_response() -> Response:
    """Generate Prometheus /metrics response."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
