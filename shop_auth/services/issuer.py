"""Session issuance: login, logout and refresh-token exchange"""
from dataclasses import dataclass
from typing import Callable, Optional

from shop_auth.services.authenticator import extract_bearer_token
from shop_auth.services.identity import Identity, IdentityDirectory
from shop_auth.utils.errors import (
    BadCredentials,
    IdentityNotFound,
    MalformedRequest,
    StoreUnavailable,
    TokenInvalid,
    TokenRevoked,
)
from shop_auth.utils.jwt_utils import TokenCodec
from shop_auth.utils.logger import logger
from shop_auth.utils.passwords import verify_password
from shop_auth.utils.revocation import RevocationStore


@dataclass(frozen=True)
class TokenPair:
    user_id: int
    access_token: str
    refresh_token: str
    expires_in: int  # seconds until the access token expires


class SessionIssuer:
    """Issues token pairs and ends sessions.

    Login compares credentials through an opaque ``password_check`` callable, so
    the hashing scheme can change without touching session logic.
    """

    def __init__(
        self,
        codec: TokenCodec,
        store: RevocationStore,
        directory: IdentityDirectory,
        password_check: Callable[[str, str], bool] = verify_password,
        fail_closed: bool = True,
    ):
        self._codec = codec
        self._store = store
        self._directory = directory
        self._password_check = password_check
        self._fail_closed = fail_closed

    def login(self, email: str, password: str) -> TokenPair:
        """Check credentials and issue an access + refresh token pair.

        Raises:
            BadCredentials: unknown email or wrong password (indistinguishable).
        """
        identity = self._directory.find_by_subject(email)
        if identity is None or not self._password_check(password, identity.password_hash):
            logger.warning("Bad credentials", extra={"subject": email, "action": "login"})
            raise BadCredentials("Invalid email or password")

        pair = self._issue(identity)
        logger.info(
            f"Issued session tokens for user {identity.id}",
            extra={"user_id": identity.id, "action": "login"},
        )
        return pair

    def logout(self, authorization: Optional[str], refresh_token: Optional[str] = None) -> None:
        """Revoke the caller's access token (and refresh token, if given).

        Raises:
            MalformedRequest: header missing or not ``Bearer <token>``.
            TokenInvalid: access token is not correctly signed.
        """
        token = extract_bearer_token(authorization)
        if token is None:
            raise MalformedRequest("Authorization header must start with Bearer ")

        self._store.revoke(token, self._codec.get_expiry(token))

        if refresh_token:
            try:
                self._store.revoke(refresh_token, self._codec.get_expiry(refresh_token))
            except TokenInvalid as exc:
                logger.warning(f"Ignoring unreadable refresh token at logout: {exc}", extra={"action": "logout"})

        logger.info("Logout successful", extra={"action": "logout"})

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair, revoking the old refresh token.

        Raises:
            TokenInvalid: bad, expired, or not a refresh token.
            TokenRevoked: already used or logged out (or the store is down).
            IdentityNotFound: the user was deleted.
        """
        claims = self._codec.verify_and_decode(refresh_token)
        if not claims.is_refresh:
            raise TokenInvalid("Access token presented for refresh")

        try:
            revoked = self._store.is_revoked(refresh_token)
        except StoreUnavailable as exc:
            logger.error(f"Revocation store unavailable during refresh: {exc}", extra={"subject": claims.subject})
            if self._fail_closed:
                raise TokenRevoked("Revocation status unknown") from exc
            revoked = False

        if revoked:
            raise TokenRevoked("Refresh token has been revoked")

        identity = self._directory.find_by_subject(claims.subject)
        if identity is None:
            raise IdentityNotFound(claims.subject)

        pair = self._issue(identity)
        self._store.revoke(refresh_token, claims.expires_at_datetime)
        logger.info(
            f"Rotated refresh token for user {identity.id}",
            extra={"user_id": identity.id, "action": "refresh"},
        )
        return pair

    def _issue(self, identity: Identity) -> TokenPair:
        return TokenPair(
            user_id=identity.id,
            access_token=self._codec.issue_access_token(identity),
            refresh_token=self._codec.issue_refresh_token(identity),
            expires_in=self._codec.access_ttl_ms // 1000,
        )
