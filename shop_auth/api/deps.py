"""API dependencies for authentication and authorization.

The authentication middleware has already resolved the bearer token by the
time a route runs; these dependencies only read the request-scoped
:class:`AuthContext` it left on ``request.state.auth``.

Session services are built once in the application lifespan and reached
through ``request.app.state``.
"""
from typing import Callable

from fastapi import Depends, Request

from shop_auth.services.authenticator import AuthContext
from shop_auth.services.issuer import SessionIssuer
from shop_auth.utils.errors import AccessDenied, AuthenticationRequired
from shop_auth.utils.jwt_utils import TokenCodec


def get_auth_context(request: Request) -> AuthContext:
    """Return the caller's auth context (anonymous if the middleware did not run)."""
    return getattr(request.state, "auth", None) or AuthContext.anonymous()


def get_issuer(request: Request) -> SessionIssuer:
    return request.app.state.issuer


def get_codec(request: Request) -> TokenCodec:
    return request.app.state.codec


def require_user(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Require an authenticated session. Anonymous callers get 401 "Authentication required"."""
    if not auth.is_authenticated:
        raise AuthenticationRequired("Authentication required")
    return auth


def require_role(role: str) -> Callable:
    """Return a dependency that requires ``role`` (e.g. ``"ROLE_ADMIN"``).

    Usage::

        @router.get("/admin-only")
        def endpoint(auth: AuthContext = Depends(require_role("ROLE_ADMIN"))):
            ...
    """

    def _role_dep(auth: AuthContext = Depends(require_user)) -> AuthContext:
        if role not in auth.roles:
            raise AccessDenied(f"Role '{role}' required")
        return auth

    # Give FastAPI a unique name so it doesn't collapse distinct dependencies
    _role_dep.__name__ = f"require_role_{role.lower()}"
    return _role_dep
