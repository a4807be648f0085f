"""Bearer-token authentication middleware"""
from typing import Callable

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from shop_auth.middleware.monitoring import record_auth_failure
from shop_auth.schemas.responses import unauthorized_response
from shop_auth.services.authenticator import SessionAuthenticator


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Runs the session gate on every request.

    The result is stored on ``request.state.auth`` for the rest of this request
    only. Rejected requests are answered here and never reach a route handler.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        authenticator: SessionAuthenticator = request.app.state.authenticator

        # Revocation and identity lookups block, keep them off the event loop
        auth = await run_in_threadpool(authenticator.authenticate, request.headers.get("authorization"))
        request.state.auth = auth

        if auth.is_rejected:
            record_auth_failure(auth.reason)
            return unauthorized_response(auth.message, request.url.path)

        return await call_next(request)
