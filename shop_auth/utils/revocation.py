"""Token revocation store — blacklist entries that expire together with the token they revoke.

The TTL only bounds memory: an expired token is already rejected by the codec's
expiry check, so a missing entry after natural expiry is the correct answer.
"""
import hashlib
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict

import redis
from redis.exceptions import RedisError

from shop_auth.config import Settings
from shop_auth.utils.errors import StoreUnavailable
from shop_auth.utils.logger import logger

KEY_PREFIX = "blacklisted_token:"
MARKER = "blacklisted"


def blacklist_key(token: str) -> str:
    """Store key for a token. The raw token never leaves the process."""
    return KEY_PREFIX + hashlib.sha256(token.encode()).hexdigest()


class RevocationStore(ABC):
    """Base class: TTL arithmetic, retries and logging; subclasses do the I/O."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        retry_attempts: int = 3,
        retry_backoff: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._retry_attempts = max(1, retry_attempts)
        self._retry_backoff = retry_backoff
        self._sleep = sleep

    def revoke(self, token: str, expires_at: datetime) -> None:
        """Blacklist ``token`` until ``expires_at``.

        Revoking an already-expired token is a no-op. Store failures are retried,
        then logged and swallowed: revocation is best effort.
        """
        ttl_ms = int((expires_at.timestamp() - self._clock()) * 1000)
        if ttl_ms <= 0:
            logger.warning("Token already expired, not adding to blacklist", extra={"action": "revoke_token"})
            return

        key = blacklist_key(token)
        for attempt in range(1, self._retry_attempts + 1):
            try:
                self._set_marker(key, ttl_ms)
            except StoreUnavailable as exc:
                logger.warning(
                    f"Blacklist write failed (attempt {attempt}/{self._retry_attempts}): {exc}",
                    extra={"action": "revoke_token"},
                )
                if attempt < self._retry_attempts:
                    self._sleep(self._retry_backoff * 2 ** (attempt - 1))
                continue

            logger.info(f"Token blacklisted with TTL: {ttl_ms} ms", extra={"action": "revoke_token", "ttl_ms": ttl_ms})
            return

        logger.error("Error blacklisting token: revocation store unavailable", extra={"action": "revoke_token"})

    def is_revoked(self, token: str) -> bool:
        """Membership check.

        Raises:
            StoreUnavailable: when the store cannot answer.
        """
        return self._has_marker(blacklist_key(token))

    @abstractmethod
    def _set_marker(self, key: str, ttl_ms: int) -> None:
        """Write the marker with a millisecond TTL. Raise StoreUnavailable on failure."""

    @abstractmethod
    def _has_marker(self, key: str) -> bool:
        """Raise StoreUnavailable on failure."""

    @abstractmethod
    def ping(self) -> bool:
        """Readiness probe."""


class RedisRevocationStore(RevocationStore):
    """Blacklist kept in Redis with ``SET key marker PX ttl``."""

    def __init__(self, client: redis.Redis, **kwargs):
        super().__init__(**kwargs)
        self._client = client

    def _set_marker(self, key: str, ttl_ms: int) -> None:
        try:
            self._client.set(key, MARKER, px=ttl_ms)
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    def _has_marker(self, key: str) -> bool:
        try:
            return self._client.exists(key) > 0
        except RedisError as exc:
            raise StoreUnavailable(str(exc)) from exc

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError:
            return False


class InMemoryRevocationStore(RevocationStore):
    """Single-process blacklist for development and tests."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._entries: Dict[str, float] = {}  # key -> deadline (epoch seconds)
        self._lock = threading.Lock()

    def _set_marker(self, key: str, ttl_ms: int) -> None:
        with self._lock:
            self._entries[key] = self._clock() + ttl_ms / 1000

    def _has_marker(self, key: str) -> bool:
        with self._lock:
            deadline = self._entries.get(key)
            if deadline is None:
                return False
            if self._clock() >= deadline:
                del self._entries[key]
                return False
            return True

    def ping(self) -> bool:
        return True

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for deadline in self._entries.values() if deadline > now)


def create_revocation_store(settings: Settings, clock: Callable[[], float] = time.time) -> RevocationStore:
    """Build the store named by ``REDIS_URL`` (``memory://`` selects the in-process store)."""
    options = {
        "clock": clock,
        "retry_attempts": settings.REVOCATION_RETRY_ATTEMPTS,
        "retry_backoff": settings.REVOCATION_RETRY_BACKOFF,
    }
    if settings.REDIS_URL.startswith("memory://"):
        logger.warning("Using in-memory token blacklist; revocations are not shared between processes")
        return InMemoryRevocationStore(**options)

    client = redis.Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
    )
    return RedisRevocationStore(client, **options)
