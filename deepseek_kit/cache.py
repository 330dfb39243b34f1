"""Time-to-live key/value cache.

Entries expire ``ttl`` seconds after they were stored. There is no size
bound and no LRU ordering; expired entries are evicted lazily on access.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from typing import Any

# Default lifetime, matching the weather lookup cache of the tool examples
DEFAULT_TTL = 600.0

_MISSING = object()


class TTLCache:
    """A TTL-only cache with an injectable clock.

    Args:
        ttl: Lifetime of an entry in seconds.
        clock: Zero-argument callable returning the current time in seconds.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, float, Any]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value, or ``default`` if missing or expired."""
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            return default
        stored_at, ttl, value = entry
        if self._clock() - stored_at < ttl:
            return value
        del self._entries[key]
        return default

    def put(self, key: Hashable, value: Any, ttl: float | None = None) -> None:
        """Store ``value`` under ``key``, overwriting any previous entry.

        ``ttl`` overrides the cache lifetime for this entry only.
        """
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive")
        self._entries[key] = (self._clock(), ttl or self._ttl, value)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        now = self._clock()
        expired = [k for k, (at, ttl, _) in self._entries.items() if now - at >= ttl]
        for key in expired:
            del self._entries[key]
        return len(self._entries)
