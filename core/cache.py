"""
core/cache.py -- Small in-process TTL cache with an injected clock.

Owned by whoever creates it (the API lifespan creates one and stores it on
app.state); there is no module-level instance. Lifecycle: construct, use,
close().

Usage:
    cache = TTLCache()
    snapshot = cache.get_or_set("teams", load_teams, ttl=30)
    cache.delete("teams")          # after a write that changes the tree
    cache.purge_expired()          # optional; expired entries are also dropped lazily
    cache.close()
"""

import threading
import time
from typing import Any, Callable, Optional

_DEFAULT_TTL = 60.0  # seconds


class TTLCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic, default_ttl: float = _DEFAULT_TTL) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for key if it exists and hasn't expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store value under key, replacing any existing entry."""
        lifetime = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (value, self._clock() + lifetime)

    def get_or_set(self, key: str, factory: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        """Return the cached value, or build it with factory() and cache it.

        factory runs outside the lock; two concurrent misses may both build
        the value and the last writer wins.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = factory()
        self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of entries removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def close(self) -> None:
        self.clear()
