"""JWT utilities — HMAC signing key, token issuance, verification and claim extraction"""
import base64
import binascii
import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from jose import jws, jwt
from jose.exceptions import JWSError, JWTError
from jose.utils import base64url_decode, base64url_encode

from shop_auth.config import Settings
from shop_auth.services.identity import Identity
from shop_auth.utils.errors import (
    ConfigInvalid,
    TokenBadSignature,
    TokenEmpty,
    TokenExpired,
    TokenInvalid,
    TokenMalformed,
    TokenUnsupportedAlgorithm,
)
from shop_auth.utils.logger import logger

SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")
MIN_KEY_BYTES = 32  # 256 bits
EXPIRING_SOON_SECONDS = 300

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class Claims:
    """Decoded, signature-checked token payload."""

    subject: str
    issued_at: int   # epoch seconds
    expires_at: int  # epoch seconds
    kind: str = ACCESS
    identity_id: Optional[int] = None
    roles: Tuple[str, ...] = field(default_factory=tuple)
    token_id: Optional[str] = None

    @property
    def is_refresh(self) -> bool:
        return self.kind == REFRESH

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)


def load_signing_key(secret: Optional[str]) -> bytes:
    """Decode and validate the Base64 signing secret.

    Raises:
        ConfigInvalid: if the secret is missing, not Base64, or shorter than 256 bits.
    """
    if secret is None or not secret.strip():
        raise ConfigInvalid("JWT secret must not be null or empty")

    try:
        key = base64.b64decode(secret.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigInvalid("JWT secret must be a valid Base64 encoded string") from exc

    if len(key) < MIN_KEY_BYTES:
        raise ConfigInvalid(
            "JWT secret must be at least 256 bits (32 bytes) after Base64 decoding. "
            f"Current length: {len(key)} bytes"
        )

    logger.info(f"JWT secret validated successfully. Key length: {len(key) * 8} bits")
    return key


class TokenCodec:
    """Creates and parses HMAC-signed session tokens.

    Holds the decoded signing key for the lifetime of the process; everything
    else is a pure function of the arguments and the injected clock.
    """

    def __init__(
        self,
        secret: Optional[str],
        access_ttl_ms: int = 3_600_000,
        refresh_ttl_ms: int = 86_400_000,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ):
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigInvalid(f"Unsupported JWT algorithm '{algorithm}', expected one of {SUPPORTED_ALGORITHMS}")
        # iat/exp are whole epoch seconds, so a lifetime must be too
        for name, ttl_ms in (("access", access_ttl_ms), ("refresh", refresh_ttl_ms)):
            if ttl_ms < 1000 or ttl_ms % 1000:
                raise ConfigInvalid(
                    f"Token {name} lifetime must be a whole number of seconds, at least 1000 ms. "
                    f"Current value: {ttl_ms} ms"
                )

        self._key = load_signing_key(secret)
        self.algorithm = algorithm
        self.access_ttl_ms = access_ttl_ms
        self.refresh_ttl_ms = refresh_ttl_ms
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> "TokenCodec":
        return cls(
            secret=settings.JWT_SECRET,
            access_ttl_ms=settings.JWT_EXPIRATION_MS,
            refresh_ttl_ms=settings.JWT_REFRESH_EXPIRATION_MS,
            algorithm=settings.JWT_ALGORITHM,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_access_token(self, identity: Identity) -> str:
        """Sign an access token carrying the identity's id and roles."""
        return self._sign(
            identity.subject,
            self.access_ttl_ms,
            {"id": identity.id, "role": list(identity.roles)},
        )

    def issue_refresh_token(self, identity: Identity) -> str:
        """Sign a refresh token. Carries no id or roles, so it cannot authorize requests."""
        return self._sign(identity.subject, self.refresh_ttl_ms, {})

    def _sign(self, subject: str, ttl_ms: int, extra_claims: Dict[str, Any]) -> str:
        now = int(self._clock())
        payload: Dict[str, Any] = {
            "sub": subject,
            **extra_claims,
            "iat": now,
            "exp": now + ttl_ms // 1000,
            # Two tokens issued to the same user in the same second must still differ,
            # otherwise revoking one would revoke the other.
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, self._key, algorithm=self.algorithm)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_and_decode(self, token: Optional[str]) -> Claims:
        """Verify signature and expiry, returning the token's claims.

        Raises:
            TokenEmpty, TokenMalformed, TokenUnsupportedAlgorithm,
            TokenBadSignature, TokenExpired: all subclasses of TokenInvalid.
        """
        claims = self._decode(token)
        if self._clock() >= claims.expires_at:
            raise TokenExpired("Token expired")
        return claims

    def get_expiry(self, token: Optional[str]) -> datetime:
        """Return the expiry of a correctly signed token without enforcing it."""
        return self._decode(token).expires_at_datetime

    def is_expiring_soon(self, token: Optional[str], window_seconds: int = EXPIRING_SOON_SECONDS) -> bool:
        """True when less than ``window_seconds`` of lifetime remain, or the token is unreadable."""
        try:
            claims = self._decode(token)
        except TokenInvalid:
            return True
        return claims.expires_at - self._clock() < window_seconds

    def _decode(self, token: Optional[str]) -> Claims:
        if token is None or not token.strip():
            raise TokenEmpty("Token cannot be empty")

        # Structure is checked up front, so any failure in jws.verify below is a signature mismatch
        try:
            header = jwt.get_unverified_header(token)
            jws.get_unverified_claims(token)
        except (JWTError, JWSError) as exc:
            raise TokenMalformed("Invalid token format") from exc

        if header.get("alg") != self.algorithm:
            raise TokenUnsupportedAlgorithm(f"Unsupported token algorithm: {header.get('alg')!r}")

        try:
            raw_payload = jws.verify(token, self._key, algorithms=[self.algorithm])
        except JWSError as exc:
            raise TokenBadSignature("Invalid token signature") from exc

        # jose decodes the signature leniently: unused trailing bits and padding are ignored,
        # so several spellings of one MAC would verify. Only the canonical encoding is accepted.
        signature_segment = token.rsplit(".", 1)[1]
        if base64url_encode(base64url_decode(signature_segment.encode())).decode() != signature_segment:
            raise TokenBadSignature("Non-canonical token signature encoding")

        try:
            payload = json.loads(raw_payload)
        except ValueError as exc:
            raise TokenMalformed("Token payload is not JSON") from exc

        return _claims_from_payload(payload)


def _claims_from_payload(payload: Any) -> Claims:
    if not isinstance(payload, dict):
        raise TokenMalformed("Token payload must be a JSON object")

    subject = payload.get("sub")
    issued_at = payload.get("iat")
    expires_at = payload.get("exp")
    token_id = payload.get("jti")
    if not isinstance(subject, str) or not subject:
        raise TokenMalformed("Token has no subject")
    if not _is_int(issued_at) or not _is_int(expires_at) or expires_at <= issued_at:
        raise TokenMalformed("Token timestamps are missing or inconsistent")
    if token_id is not None and not isinstance(token_id, str):
        raise TokenMalformed("Token id must be a string")

    if "id" not in payload and "role" not in payload:
        return Claims(
            subject=subject,
            issued_at=issued_at,
            expires_at=expires_at,
            kind=REFRESH,
            token_id=token_id,
        )

    identity_id = payload.get("id")
    roles = payload.get("role", [])
    if not _is_int(identity_id):
        raise TokenMalformed("Access token has no numeric id")
    if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        raise TokenMalformed("Access token roles must be a list of strings")

    return Claims(
        subject=subject,
        issued_at=issued_at,
        expires_at=expires_at,
        kind=ACCESS,
        identity_id=identity_id,
        roles=tuple(roles),
        token_id=token_id,
    )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
