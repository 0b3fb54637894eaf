"""Cache mémoire borné avec TTL (images proxifiées)."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Hashable, Optional


class TTLCache:
    """In-memory cache with TTL and a max number of entries.

    Oldest entries are evicted first once max_entries is reached.
    Safe to share between Flask request threads.
    """

    def __init__(self, ttl_seconds: float = 86400.0, max_entries: int = 500) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._cache: OrderedDict[Hashable, tuple[float, object]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[object]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self.misses += 1
                return None

            timestamp, value = entry
            if time.monotonic() - timestamp > self._ttl:
                del self._cache[key]
                self.misses += 1
                return None

            self._cache.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: Hashable, value: object) -> None:
        with self._lock:
            if key in self._cache:
                del self._cache[key]
            while len(self._cache) >= self._max_entries:
                self._cache.popitem(last=False)
            self._cache[key] = (time.monotonic(), value)

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._cache)
