"""
Banklink Nonce Management

Replay protection for inbound packets. A nonce is issued when the
outbound request is built, travels inside the packet, and must be
consumed exactly once when the bank's answer is verified.

consume() is the one operation in the package that runs concurrently
(simultaneous bank callbacks). Implementations MUST make check-and-mark
a single indivisible step.
"""

import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from . import config


class NonceManager(ABC):
    """Issues one-time tokens and consumes each of them at most once."""

    @abstractmethod
    def issue(self) -> Optional[str]:
        """Create a new nonce, or None if replay protection is not configured."""
        pass

    @abstractmethod
    def consume(self, nonce: str) -> bool:
        """
        Atomically check and mark a nonce as used.

        Returns:
            True on the first use of an issued nonce
            False if the nonce is unknown, expired or already consumed
        """
        pass


class DisabledNonceManager(NonceManager):
    """Replay protection switched off: nothing is issued, nothing consumes."""

    def issue(self) -> Optional[str]:
        return None

    def consume(self, nonce: str) -> bool:
        return False


class InMemoryNonceManager(NonceManager):
    """
    In-memory nonce manager for a single process.

    WARNING: Not suitable for multi-process deployments.
    - Not persistent across restarts
    - Not shared between workers

    Use RedisNonceManager when callbacks may hit different processes.
    """

    def __init__(
        self,
        ttl_seconds: int = 0,
        nbytes: int = 16,
        clock: Callable[[], float] = time.time
    ):
        # nonce -> issued_at; consume() removes the entry, so nothing is
        # retained for a used nonce
        self._issued: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._nbytes = nbytes
        self._clock = clock

    def issue(self) -> Optional[str]:
        nonce = secrets.token_hex(self._nbytes)
        with self._lock:
            self._issued[nonce] = self._clock()
        return nonce

    def consume(self, nonce: str) -> bool:
        if not nonce:
            return False
        now = self._clock()
        with self._lock:
            issued_at = self._issued.pop(nonce, None)
        if issued_at is None:
            return False
        return not (self._ttl and now - issued_at > self._ttl)

    def pending(self) -> int:
        """Number of issued, not yet consumed nonces."""
        with self._lock:
            return len(self._issued)

    def cleanup_expired(self) -> int:
        """Drop issued nonces past their TTL. Returns count removed."""
        if not self._ttl:
            return 0
        now = self._clock()
        with self._lock:
            expired = [k for k, t in self._issued.items() if now - t > self._ttl]
            for k in expired:
                del self._issued[k]
            return len(expired)


class RedisNonceManager(NonceManager):
    """
    Redis-backed nonce manager for multi-process deployments.

    Features:
    - Shared between workers
    - Issue via SET NX with TTL
    - Consume via DELETE, which is atomic: of two racing deletes of the
      same key exactly one reports a removed key

    Requires: a redis-py compatible client passed in by the caller
    """

    def __init__(self, redis_client, key_prefix: str = "banklink:nonce:",
                 ttl_seconds: int = config.NONCE_TTL_SECONDS, nbytes: int = 16):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds
        self._nbytes = nbytes

    def _key(self, nonce: str) -> str:
        return f"{self.key_prefix}{nonce}"

    def issue(self) -> Optional[str]:
        while True:
            nonce = secrets.token_hex(self._nbytes)
            created = self.redis.set(self._key(nonce), "1", nx=True, ex=self.ttl_seconds or None)
            if created:
                return nonce

    def consume(self, nonce: str) -> bool:
        if not nonce:
            return False
        return self.redis.delete(self._key(nonce)) == 1
