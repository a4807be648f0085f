"""FastAPI application entry point"""
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from shop_auth.api import auth, health
from shop_auth.config import Settings, settings
from shop_auth.database import SessionLocal
from shop_auth.middleware.authentication import AuthenticationMiddleware
from shop_auth.middleware.rate_limit import limiter
from shop_auth.middleware.security_headers import SecurityHeadersMiddleware
from shop_auth.schemas.responses import ErrorDetail, error_response, unauthorized_response
from shop_auth.services.authenticator import SessionAuthenticator
from shop_auth.services.identity import IdentityDirectory
from shop_auth.services.issuer import SessionIssuer
from shop_auth.utils.errors import (
    AccessDenied,
    AuthenticationRequired,
    BadCredentials,
    ConfigInvalid,
    IdentityNotFound,
    MalformedRequest,
    ShopAuthError,
    TokenInvalid,
    TokenRevoked,
)
from shop_auth.utils.jwt_utils import TokenCodec
from shop_auth.utils.logger import logger, setup_logging
from shop_auth.utils.revocation import RevocationStore, create_revocation_store

# Setup logging
setup_logging(settings.LOG_LEVEL)

_ERROR_STATUS = (
    (BadCredentials, 401),
    (TokenInvalid, 401),
    (TokenRevoked, 401),
    (IdentityNotFound, 401),
    (AccessDenied, 403),
    (MalformedRequest, 400),
)


def create_app(
    app_settings: Settings = settings,
    clock: Callable[[], float] = time.time,
    revocation_store: Optional[RevocationStore] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> FastAPI:
    """Build the application.

    Session services are constructed once, at startup, and shared through
    ``app.state``. A weak or malformed signing key aborts startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            codec = TokenCodec.from_settings(app_settings, clock=clock)
        except ConfigInvalid as exc:
            logger.critical(f"Refusing to start: {exc}")
            raise

        store = revocation_store or create_revocation_store(app_settings, clock=clock)
        directory = IdentityDirectory(session_factory)

        app.state.codec = codec
        app.state.revocation_store = store
        app.state.authenticator = SessionAuthenticator(
            codec, store, directory, fail_closed=app_settings.REVOCATION_FAIL_CLOSED
        )
        app.state.issuer = SessionIssuer(
            codec, store, directory, fail_closed=app_settings.REVOCATION_FAIL_CLOSED
        )

        logger.info("Shop auth service starting up", extra={
            "action": "startup",
            "reason": f"store={type(store).__name__} fail_closed={app_settings.REVOCATION_FAIL_CLOSED}",
        })
        yield
        logger.info("Shop auth service shutting down", extra={"action": "shutdown"})

    app = FastAPI(
        title="Shop Auth",
        description="JWT session lifecycle for the shop backend: login, logout, refresh and token revocation",
        version="0.1.0",
        docs_url=None if app_settings.is_production else "/docs",
        redoc_url=None if app_settings.is_production else "/redoc",
        lifespan=lifespan,
    )

    # ===== Middleware Setup =====
    # Added innermost first: authentication runs after CORS, metrics and headers

    app.add_middleware(AuthenticationMiddleware)

    if app_settings.SECURITY_HEADERS_ENABLED:
        app.add_middleware(SecurityHeadersMiddleware)

    if app_settings.METRICS_ENABLED:
        from prometheus_fastapi_instrumentator import Instrumentator

        from shop_auth.middleware.monitoring import MonitoringMiddleware

        app.add_middleware(MonitoringMiddleware)

        instrumentator = Instrumentator(
            should_group_status_codes=True,
            should_ignore_untemplated=True,
            excluded_handlers=[app_settings.METRICS_PATH, "/health", "/health/ready", "/health/live"],
        )
        instrumentator.instrument(app)
        instrumentator.expose(app, endpoint=app_settings.METRICS_PATH, include_in_schema=False)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting
    app.state.limiter = limiter

    # ===== Route Setup =====

    app.include_router(health.router)
    app.include_router(auth.router, prefix=app_settings.API_PREFIX)

    @app.get("/")
    def root():
        """Root endpoint"""
        return {
            "service": "shop-auth",
            "version": "0.1.0",
            "status": "operational",
            "docs": None if app_settings.is_production else "/docs",
            "health": "/health",
        }

    # ===== Error Handlers =====

    @app.exception_handler(ShopAuthError)
    async def session_error_handler(request: Request, exc: ShopAuthError):
        """Map session errors to their fixed client-facing messages"""
        path = request.url.path

        if isinstance(exc, AuthenticationRequired):
            return unauthorized_response(exc.public_message, path)

        for error_type, status_code in _ERROR_STATUS:
            if isinstance(exc, error_type):
                logger.warning(
                    f"{type(exc).__name__} for request: {path} - {exc}",
                    extra={"path": path, "reason": type(exc).__name__},
                )
                errors = None
                if isinstance(exc, MalformedRequest):
                    errors = [ErrorDetail(field="Authorization", message=str(exc))]
                headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
                return error_response(status_code, exc.public_message, path, errors, headers)

        logger.error(f"Unhandled session error for request: {path} - {exc}", extra={"path": path}, exc_info=exc)
        return error_response(500, "An unexpected error occurred. Please try again later.", path)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Return field-level validation errors"""
        errors = [
            ErrorDetail(field=".".join(str(part) for part in err["loc"][1:]) or None, message=err["msg"])
            for err in exc.errors()
        ]
        logger.warning(f"Validation failed for request: {request.url.path}", extra={"path": request.url.path})
        return error_response(400, "Validation failed", request.url.path, errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        """Wrap framework HTTP errors in the standard envelope"""
        if exc.status_code == 404:
            message = "Endpoint not found"
        elif exc.status_code == 405:
            message = f"Method '{request.method}' is not supported for this endpoint"
        else:
            message = str(exc.detail)
        return error_response(exc.status_code, message, request.url.path, headers=getattr(exc, "headers", None))

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        """Handle rate limit exceeded errors"""
        logger.warning(
            "Rate limit exceeded",
            extra={
                "path": request.url.path,
                "method": request.method,
            }
        )
        return error_response(429, "Too many requests. Please try again later.", request.url.path)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for uncaught errors"""
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method
            },
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "status": 500,
                "message": "An unexpected error occurred. Please try again later.",
                "path": request.url.path,
            }
        )

    return app


app = create_app()


def main() -> None:
    """Run the service with uvicorn on the configured HOST and PORT."""
    logger.info(f"Starting shop auth service on {settings.HOST}:{settings.PORT}")
    uvicorn.run(
        "shop_auth.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=not settings.is_production,
    )


if __name__ == "__main__":
    main()
