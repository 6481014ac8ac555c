"""
In-memory access-token cache with TTL.

Channel-manager access tokens live on ``external_connections``; caching them
per connection avoids a database read before every outbound call. Entries are
dropped when they expire, when the token itself is about to expire, or when a
refresh replaces them.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Optional

from reservation_sync.utils.datetime import utc_now


class TokenCache:
    """
    Thread-safe in-memory token cache keyed by connection ID.

    The runner and request handlers share one process-wide instance across
    worker threads, so every access goes through a lock.

    Example:
        >>> cache = TokenCache(ttl_seconds=3600)
        >>> cache.set("conn-1", "token-abc-123")
        >>> cache.get("conn-1")
        'token-abc-123'
        >>> cache.invalidate("conn-1")
    """

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._cache: dict[str, tuple[str, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, connection_id: str) -> str | None:
        """
        Get cached token if not expired.

        Returns:
            Cached token string if found and not expired, None otherwise
        """
        with self._lock:
            entry = self._cache.get(connection_id)
            if entry is None:
                return None
            token, expires_at = entry
            if utc_now() < expires_at:
                return token
            del self._cache[connection_id]
            return None

    def set(self, connection_id: str, token: str, token_expires_at: Optional[datetime] = None) -> None:
        """
        Cache token until the TTL or the token's own expiry, whichever comes first.

        Args:
            connection_id: ExternalConnection ID
            token: Access token to cache
            token_expires_at: Expiry reported by the channel manager, if known
        """
        expires_at = utc_now() + self.ttl
        if token_expires_at is not None and token_expires_at < expires_at:
            expires_at = token_expires_at
        with self._lock:
            self._cache[connection_id] = (token, expires_at)

    def invalidate(self, connection_id: str) -> None:
        with self._lock:
            self._cache.pop(connection_id, None)

    def clear(self) -> None:
        """Clear all cached tokens. Used by tests and on connection deletion."""
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._cache)


# Octorate tokens are short-lived; the TTL only bounds how stale a token
# rotated by another process can get.
token_cache = TokenCache(ttl_seconds=900)
