"""
Download tokens for local-file pre-signed URLs.

Object stores sign URLs themselves; the local filesystem cannot, so the
local backend issues an opaque token that the HTTP layer exchanges for the
file at GET {prefix}/files/{token}.

Invariants:
    - A token resolves only until its expiry instant
    - Expired tokens are evicted on issue() and on a failed resolve()
    - The store is an explicit object owned by the server, never a global
"""

from __future__ import annotations

import hashlib
import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class TokenGrant:
    """A path readable through a token until expires_ms."""

    path: str
    expires_ms: int


class SignedUrlTokenStore:
    """Keyed store of local download tokens with expiry-based eviction.

    Example:
        >>> store = SignedUrlTokenStore(secret="s3cr3t")
        >>> token = store.issue("/data/orders/part-0.parquet", ttl_seconds=60)
        >>> store.resolve(token)
        '/data/orders/part-0.parquet'
    """

    def __init__(
        self,
        secret: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            secret: Secret mixed into every token digest
            clock: Time source in seconds (injectable for tests)
        """
        self._secret = secret
        self._clock = clock
        self._grants: dict[str, TokenGrant] = {}
        self._lock = threading.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def issue(self, path: str, ttl_seconds: int) -> str:
        """Issue a token granting read access to path for ttl_seconds."""
        expires_ms = self._now_ms() + ttl_seconds * 1000
        digest = hashlib.sha256(f"{path}:{expires_ms}:{self._secret}".encode("utf-8"))
        token = digest.hexdigest()

        with self._lock:
            self._grants[token] = TokenGrant(path=path, expires_ms=expires_ms)
            self._evict_expired_locked()
        return token

    def resolve(self, token: str) -> str | None:
        """Return the granted path, or None if the token is unknown or expired."""
        with self._lock:
            grant = self._grants.get(token)
            if grant is None:
                return None
            if grant.expires_ms < self._now_ms():
                del self._grants[token]
                return None
            return grant.path

    def evict_expired(self) -> int:
        """Drop every expired grant.

        Returns:
            Number of grants evicted
        """
        with self._lock:
            return self._evict_expired_locked()

    def _evict_expired_locked(self) -> int:
        now = self._now_ms()
        expired = [t for t, g in self._grants.items() if g.expires_ms < now]
        for token in expired:
            del self._grants[token]
        return len(expired)

    def __len__(self) -> int:
        return len(self._grants)
