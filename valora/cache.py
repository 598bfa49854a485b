# valora/cache.py
# Purpose: Shared in-memory TTL + LRU cache for quotes and proxied responses.
# Why: Reduce API calls to Yahoo, protect against rate limits.
# Pitfalls: Not persistent; resets if container restarts.

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any


class TTLCache:
    """LRU cache whose entries also expire after a fixed TTL.

    Expired entries are evicted lazily on read. Inserting past ``max_entries``
    evicts the least recently used entry whether or not it has expired.
    """

    def __init__(
        self,
        max_entries: int = 100,
        ttl_s: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.ttl_s = ttl_s
        self._clock = clock
        self._lock = threading.Lock()
        # store: key -> (expiry_epoch, data), oldest first
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def get(self, key: str) -> Any:
        """Return cached data if valid, else None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expiry, data = entry
            if self._clock() >= expiry:
                # expired
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return data

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._clock() >= entry[0]:
                del self._entries[key]
                return False
            return True

    def set(self, key: str, data: Any) -> None:
        """Store data with expiry, marking it most recently used."""
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_s, data)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def quote_cache_key(symbol: str) -> str:
    return f"quote:{symbol.upper()}"
