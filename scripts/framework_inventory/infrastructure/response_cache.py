from __future__ import annotations
import time
from collections import OrderedDict
from typing import Callable, Generic, TypeVar

V = TypeVar("V")

DEFAULT_TTL = 300
DEFAULT_MAXSIZE = 10_000


class ResponseCache(Generic[V]):
    """
    In-memory LRU cache with a per-entry TTL, keyed by request.

    Usage:
        cache: ResponseCache[bytes] = ResponseCache(ttl=300)
        value = cache.get(url)
        if value is None:
            value = await fetch(url)
            cache.set(url, value)
    """

    def __init__(self, ttl: float = DEFAULT_TTL, maxsize: int = DEFAULT_MAXSIZE, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl     = ttl
        self.maxsize = maxsize
        self._clock  = clock
        self._entries: OrderedDict[str, tuple[V, float]] = OrderedDict()  # (value, expires_at)
        self.hits   = 0
        self.misses = 0

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return value

    def set(self, key: str, value: V, ttl: float | None = None) -> None:
        expires_at = self._clock() + (self.ttl if ttl is None else ttl)
        self._entries[key] = (value, expires_at)
        self._entries.move_to_end(key)

        # LRU eviction
        while len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
