"""Login, logout, refresh and session introspection endpoints"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from shop_auth.api.deps import get_codec, get_issuer, require_role, require_user
from shop_auth.middleware.monitoring import record_session_event
from shop_auth.middleware.rate_limit import get_rate_limit, limiter
from shop_auth.schemas.auth import CurrentUser, JwtResponse, LoginRequest, LogoutRequest, RefreshRequest
from shop_auth.schemas.responses import APIResponse
from shop_auth.services.authenticator import AuthContext
from shop_auth.services.issuer import SessionIssuer, TokenPair
from shop_auth.utils.errors import BadCredentials
from shop_auth.utils.jwt_utils import TokenCodec

router = APIRouter(prefix="/auth", tags=["authentication"])


def _jwt_response(pair: TokenPair) -> JwtResponse:
    return JwtResponse(
        id=pair.user_id,
        token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


@router.post("/login", response_model=APIResponse, response_model_exclude_none=True)
@limiter.limit(get_rate_limit("login"))
def login(
    request: Request,
    credentials: LoginRequest,
    issuer: SessionIssuer = Depends(get_issuer),
) -> APIResponse:
    """Exchange email + password for an access token and a refresh token.

    Use the access token as `Authorization: Bearer <token>`. Unknown emails and
    wrong passwords produce the same 401 response.
    """
    try:
        pair = issuer.login(credentials.email, credentials.password)
    except BadCredentials:
        record_session_event("login_failed")
        raise

    record_session_event("login")
    return APIResponse.ok("Login Successful", _jwt_response(pair))


@router.post("/logout", response_model=APIResponse, response_model_exclude_none=True)
@limiter.limit(get_rate_limit("logout"))
def logout(
    request: Request,
    body: Optional[LogoutRequest] = None,
    authorization: Optional[str] = Header(None),
    issuer: SessionIssuer = Depends(get_issuer),
) -> APIResponse:
    """Revoke the bearer token in the `Authorization` header.

    The token stays blacklisted until its natural expiry. Pass `refresh_token`
    in the body to revoke it as well.
    """
    issuer.logout(authorization, body.refresh_token if body else None)
    record_session_event("logout")
    return APIResponse.ok("Logout Successful")


@router.post("/refresh", response_model=APIResponse, response_model_exclude_none=True)
@limiter.limit(get_rate_limit("refresh"))
def refresh(
    request: Request,
    body: RefreshRequest,
    issuer: SessionIssuer = Depends(get_issuer),
) -> APIResponse:
    """Trade a refresh token for a new token pair. The old refresh token is revoked."""
    pair = issuer.refresh(body.refresh_token)
    record_session_event("refresh")
    return APIResponse.ok("Token refreshed", _jwt_response(pair))


@router.get("/me", response_model=APIResponse, response_model_exclude_none=True)
def current_user(
    request: Request,
    auth: AuthContext = Depends(require_user),
    codec: TokenCodec = Depends(get_codec),
) -> APIResponse:
    """Describe the session behind the bearer token."""
    token = request.headers["authorization"][len("Bearer "):].strip()
    user = CurrentUser(
        id=auth.identity.id,
        email=auth.identity.subject,
        roles=list(auth.roles),
        expires_at=auth.claims.expires_at,
        expiring_soon=codec.is_expiring_soon(token),
    )
    return APIResponse.ok("Current user", user)


@router.get("/admin/revocation-store", response_model=APIResponse, response_model_exclude_none=True)
def revocation_store_status(
    request: Request,
    _: AuthContext = Depends(require_role("ROLE_ADMIN")),
) -> APIResponse:
    """Report whether the token blacklist is reachable (ROLE_ADMIN only)."""
    reachable = request.app.state.revocation_store.ping()
    return APIResponse.ok("Revocation store status", {"reachable": reachable})
