"""Per-request session gate.

Turns an ``Authorization`` header into an :class:`AuthContext`:

    no bearer token                 -> anonymous
    bad signature / malformed / exp -> rejected "Invalid or expired token"
    blacklisted (or store down)     -> rejected "Token has been revoked"
    subject no longer exists        -> rejected "User not found"
    otherwise                       -> authenticated

The checks always run in that order, so the revocation store is never
consulted for a token that fails signature or expiry checks.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from shop_auth.services.identity import Identity, IdentityDirectory
from shop_auth.utils.errors import (
    AuthenticationRequired,
    IdentityNotFound,
    StoreUnavailable,
    TokenInvalid,
    TokenRevoked,
)
from shop_auth.utils.jwt_utils import Claims, TokenCodec
from shop_auth.utils.logger import logger
from shop_auth.utils.revocation import RevocationStore

BEARER_PREFIX = "Bearer "

INVALID_OR_EXPIRED = TokenInvalid.public_message
REVOKED = TokenRevoked.public_message
USER_NOT_FOUND = IdentityNotFound.public_message
AUTHENTICATION_REQUIRED = AuthenticationRequired.public_message


class AuthOutcome(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


@dataclass(frozen=True)
class AuthContext:
    """Request-scoped authentication result, stored on ``request.state.auth``."""

    outcome: AuthOutcome
    identity: Optional[Identity] = None
    claims: Optional[Claims] = None
    message: Optional[str] = None   # client-facing rejection message
    reason: Optional[str] = None    # internal failure kind, for logs and metrics

    @property
    def is_authenticated(self) -> bool:
        return self.outcome is AuthOutcome.AUTHENTICATED

    @property
    def is_rejected(self) -> bool:
        return self.outcome is AuthOutcome.REJECTED

    @property
    def roles(self) -> Tuple[str, ...]:
        return self.identity.roles if self.identity else ()

    @classmethod
    def anonymous(cls) -> "AuthContext":
        return cls(outcome=AuthOutcome.ANONYMOUS)

    @classmethod
    def rejected(cls, message: str, reason: str) -> "AuthContext":
        return cls(outcome=AuthOutcome.REJECTED, message=message, reason=reason)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of a ``Bearer <token>`` header, or None for any other header."""
    if authorization and authorization.startswith(BEARER_PREFIX):
        token = authorization[len(BEARER_PREFIX):].strip()
        return token or None
    return None


class SessionAuthenticator:
    def __init__(
        self,
        codec: TokenCodec,
        store: RevocationStore,
        directory: IdentityDirectory,
        fail_closed: bool = True,
    ):
        self._codec = codec
        self._store = store
        self._directory = directory
        self._fail_closed = fail_closed

    def authenticate(self, authorization: Optional[str]) -> AuthContext:
        token = extract_bearer_token(authorization)
        if token is None:
            return AuthContext.anonymous()

        try:
            claims = self._codec.verify_and_decode(token)
        except TokenInvalid as exc:
            logger.warning(f"JWT validation failed: {exc}", extra={"reason": type(exc).__name__})
            return AuthContext.rejected(INVALID_OR_EXPIRED, type(exc).__name__)

        if claims.is_refresh:
            logger.warning("Refresh token presented as bearer credential", extra={"subject": claims.subject})
            return AuthContext.rejected(INVALID_OR_EXPIRED, "RefreshTokenAsBearer")

        try:
            revoked = self._store.is_revoked(token)
        except StoreUnavailable as exc:
            logger.error(
                f"Revocation store unavailable: {exc}",
                extra={"subject": claims.subject, "reason": "StoreUnavailable"},
            )
            if self._fail_closed:
                return AuthContext.rejected(REVOKED, "StoreUnavailable")
            revoked = False

        if revoked:
            logger.info("Rejected revoked token", extra={"subject": claims.subject})
            return AuthContext.rejected(REVOKED, "TokenRevoked")

        try:
            identity = self._directory.find_by_subject(claims.subject)
        except SQLAlchemyError as exc:
            logger.error(f"Identity lookup failed: {exc}", extra={"subject": claims.subject}, exc_info=True)
            return AuthContext.rejected(AUTHENTICATION_REQUIRED, "IdentityLookupFailed")

        if identity is None:
            logger.warning("User not found", extra={"subject": claims.subject})
            return AuthContext.rejected(USER_NOT_FOUND, "IdentityNotFound")

        logger.debug(f"Authenticated user: {identity.subject}", extra={"user_id": identity.id})
        return AuthContext(outcome=AuthOutcome.AUTHENTICATED, identity=identity, claims=claims)
