"""Middleware modules for production-ready features"""
from shop_auth.middleware.authentication import AuthenticationMiddleware
from shop_auth.middleware.monitoring import (
    MonitoringMiddleware,
    record_auth_failure,
    record_revocation_store_status,
    record_session_event,
)
from shop_auth.middleware.rate_limit import get_rate_limit, limiter
from shop_auth.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "AuthenticationMiddleware",
    "MonitoringMiddleware",
    "SecurityHeadersMiddleware",
    "record_auth_failure",
    "record_revocation_store_status",
    "record_session_event",
    "limiter",
    "get_rate_limit",
]
