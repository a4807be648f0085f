"""Monitoring and observability middleware"""
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

from shop_auth.utils.logger import logger

SLOW_REQUEST_SECONDS = 1.0


# ===== Prometheus Metrics =====

# Request metrics, labelled by route template so token-bearing paths don't explode cardinality
http_requests_total = Counter(
    "shop_auth_http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"]
)

http_request_duration_seconds = Histogram(
    "shop_auth_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "route"]
)

http_errors_total = Counter(
    "shop_auth_http_errors_total",
    "Total HTTP 4xx/5xx responses",
    ["method", "route", "status"]
)

# Session metrics
authentication_failures_total = Counter(
    "shop_auth_authentication_failures_total",
    "Bearer tokens rejected by the authentication gate",
    ["reason"]  # TokenExpired, TokenBadSignature, RefreshTokenAsBearer, TokenRevoked, StoreUnavailable, ...
)

session_events_total = Counter(
    "shop_auth_session_events_total",
    "Session lifecycle events",
    ["event"]  # login, login_failed, logout, refresh
)

revocation_store_available = Gauge(
    "shop_auth_revocation_store_available",
    "1 if the token blacklist answered the last readiness probe, else 0"
)


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Counts and times every request, and tags it with an ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        method = request.method

        request_id = request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:16]}"
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception as e:
            route = _route_label(request)
            http_errors_total.labels(method=method, route=route, status=500).inc()
            logger.error(
                f"Request failed: {method} {route}: {e}",
                extra={"request_id": request_id, "method": method, "path": request.url.path},
                exc_info=True
            )
            raise

        # The route is only known once the router has matched the request
        route = _route_label(request)
        status = response.status_code
        duration = time.time() - start_time

        http_requests_total.labels(method=method, route=route, status=status).inc()
        http_request_duration_seconds.labels(method=method, route=route).observe(duration)
        if status >= 400:
            http_errors_total.labels(method=method, route=route, status=status).inc()

        if duration > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request detected: {method} {route} took {duration:.3f}s",
                extra={"request_id": request_id, "method": method, "path": request.url.path}
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response


def record_auth_failure(reason: Optional[str]):
    """Record a rejected bearer token"""
    authentication_failures_total.labels(reason=reason or "unknown").inc()


def record_session_event(event: str):
    """Record login / logout / refresh"""
    session_events_total.labels(event=event).inc()


def record_revocation_store_status(reachable: bool):
    revocation_store_available.set(1 if reachable else 0)
