"""LRU cache whose entries are shadowed once they outlive a fixed TTL.

Brief:
  Thread-safe in-memory cache used by the alternate-system resolvers. Entries
  carry their insertion time; a read older than the TTL is reported as a miss
  but the entry is left in place (lazy expiry). Capacity is bounded and the
  least recently used entry is evicted first.

Notes:
  - A stored None is normalized to the ABSENT sentinel so that "never looked
    up" (get() returns None) and "looked up, confirmed empty" (get() returns
    ABSENT) stay distinguishable.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Hashable, Optional

from cachetools import LRUCache

logger = logging.getLogger(__name__)

# Entries older than this are treated as misses.
CACHE_TTL = 30 * 60

# Default capacity bound per cache instance.
CACHE_SIZE = 3000


class _Absent:
    """Brief: Marker for a cached "no data" result.

    Inputs:
      - None.

    Outputs:
      - Singleton instance that is falsy and compares by identity.
    """

    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


class LRUTTLCache:
    """Thread-safe LRU cache with a single TTL applied lazily on read.

    Brief:
        Wraps cachetools.LRUCache so capacity-based eviction is handled by the
        library while TTL checks happen on the read path only.

    Inputs:
        - maxsize: Capacity bound (default CACHE_SIZE).
        - ttl: Seconds an entry stays readable (default CACHE_TTL).
        - timer: Clock callable returning seconds (default time.monotonic).

    Outputs:
        LRUTTLCache instance

    Example use:
        >>> cache = LRUTTLCache(maxsize=10, ttl=60)
        >>> cache.set(("dns", "example.eth.", 1, "0xabc"), b"\\x00")
        >>> cache.get(("dns", "example.eth.", 1, "0xabc"))
        b'\\x00'
        >>> cache.set(("dns", "missing.eth.", 1, "0xabc"), None)
        >>> cache.get(("dns", "missing.eth.", 1, "0xabc")) is ABSENT
        True
    """

    def __init__(
        self,
        maxsize: int = CACHE_SIZE,
        ttl: float = CACHE_TTL,
        *,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        try:
            size = int(maxsize)
        except (TypeError, ValueError):
            size = CACHE_SIZE
        if size <= 0:
            size = CACHE_SIZE

        self.maxsize: int = size
        self.ttl: float = float(ttl)
        self._timer = timer
        self._store: LRUCache = LRUCache(maxsize=size)
        self._lock = threading.RLock()

        # Best-effort access counters for diagnostics only.
        self.cache_hits: int = 0
        self.cache_misses: int = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: Hashable) -> Any | None:
        """
        Retrieves an item from the cache.

        Inputs:
            key: The key to retrieve.

        Outputs:
            The cached value (possibly ABSENT), or None if the key is not found
            or its entry is older than the TTL.
        """
        now = self._timer()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self.cache_misses += 1
                return None

            inserted_at, value = entry
            if now - inserted_at > self.ttl:
                self.cache_misses += 1
                logger.debug("LRUTTLCache stale entry shadowed: key=%r", key)
                return None

            self.cache_hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        """
        Adds or replaces an item, stamping it with the current time.

        Inputs:
            key: The key to store the value under.
            value: The value to store; None is stored as ABSENT.

        Outputs:
            None
        """
        if value is None:
            value = ABSENT
        with self._lock:
            self._store[key] = (self._timer(), value)

    def reset(self) -> None:
        """Brief: Drop every entry and zero the counters.

        Inputs:
          - None.

        Outputs:
          - None.
        """
        with self._lock:
            self._store.clear()
            self.cache_hits = 0
            self.cache_misses = 0
        logger.debug("LRUTTLCache reset")
