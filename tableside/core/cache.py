import logging
import time
from typing import Any, Callable, Hashable


logger = logging.getLogger("tableside.cache")

_MISSING = object()


class TTLCache:
    """In-process key -> (expiry, value) cache with explicit invalidation.

    The clock is injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        name: str = "cache",
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._hits = 0
        self._misses = 0
        self._sets = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default
        expires_at, value = entry
        if expires_at <= self._clock():
            self._misses += 1
            return default
        self._hits += 1
        return value

    def get_stale(self, key: Hashable, default: Any = None) -> Any:
        """Return the last stored value even if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return default
        return entry[1]

    def contains(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def set(self, key: Hashable, value: Any, ttl: float | None = None) -> None:
        now = self._clock()
        self._entries[key] = (now + (self._ttl if ttl is None else ttl), value)
        self._sets += 1
        if len(self._entries) <= self._max_size:
            return
        expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for k in expired:
            self._entries.pop(k, None)
        if len(self._entries) <= self._max_size:
            return
        overflow = len(self._entries) - self._max_size
        for k in list(self._entries.keys())[:overflow]:
            self._entries.pop(k, None)

    def invalidate(self, key: Hashable | None = None) -> None:
        if key is None:
            self._entries.clear()
            logger.debug("Cleared cache name=%s", self.name)
        else:
            self._entries.pop(key, None)
            logger.debug("Cleared cache name=%s key=%s", self.name, key)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        live = [k for k, (exp, _) in self._entries.items() if exp > now]
        total = self._hits + self._misses
        return {
            "name": self.name,
            "entries": len(live),
            "keys": [str(k) for k in live],
            "hits": self._hits,
            "misses": self._misses,
            "sets": self._sets,
            "hit_rate": round(self._hits / total, 3) if total else 0.0,
        }
