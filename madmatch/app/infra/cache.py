# madmatch/app/infra/cache.py
"""
In-memory TTL cache shared by the orchestrator and the HTTP source.
Entries expire lazily on access; a sweep of expired entries runs whenever
the map grows past `max_entries`.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

MISSING = object()


@dataclass
class CacheEntry:
    key: str
    payload: Any
    cached_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class TTLCache:
    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 100,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = MISSING) -> Any:
        """Return the cached payload, or `default` (MISSING) on a miss or a stale entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default

            if entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug("Cache entry expired: %s", key)
                return default

            return entry.payload

    def set(self, key: str, payload: Any) -> None:
        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                cached_at=now,
                expires_at=now + self.ttl_seconds,
            )

            if len(self._entries) > self.max_entries:
                self._cleanup_expired(now)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        with self._lock:
            return self._cleanup_expired(self._clock())

    def _cleanup_expired(self, now: float) -> int:
        expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            logger.debug("Removed %d expired cache entries", len(expired_keys))
        return len(expired_keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not MISSING
