"""
In-process cache with per-entry expiry.

Services own their cache instance and receive it through their constructor,
so tests can pass a cache with a fake clock or a zero TTL.
"""
import time
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """
    Key/value cache where every entry expires ``ttl`` seconds after it was set.

    Usage:
        cache: TTLCache[ResolvedConfig] = TTLCache(ttl=60)
        cache.set("acc:user:none", resolved)
        cache.get("acc:user:none")
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, V]] = {}

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: V) -> None:
        if self.ttl <= 0:
            return
        self._entries[key] = (self._clock() + self.ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate(self, predicate: Callable[[str], bool]) -> int:
        """Drop every entry whose key matches ``predicate``; returns the count."""
        keys = [key for key in self._entries if predicate(key)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
