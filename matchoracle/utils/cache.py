"""Keyed TTL cache with an injectable clock.

Owned by the composition root (OracleService) and handed to the stages
that need it, instead of each stage keeping a module-level dict.

Usage:
    cache = TTLCache(ttl=300)

    # Read
    hit, data = cache.get(("trinity", 1234))
    if hit:
        return data

    # Write
    data = expensive_analysis()
    cache.set(("trinity", 1234), data)

    # Invalidate
    cache.invalidate(("trinity", 1234))
    cache.invalidate_where(lambda key: key[1] == 1234)

Tests pass a fake clock so expiry can be driven without sleeping:
    clock = FakeClock()
    cache = TTLCache(ttl=60, clock=clock)
    clock.advance(61)
"""

import time
from collections import OrderedDict
from typing import Callable, Hashable, Optional


class TTLCache:
    """TTL-based key/value cache with optional size bound (oldest evicted first)."""

    __slots__ = ("ttl", "max_entries", "clock", "_entries", "hits", "misses")

    def __init__(
        self,
        ttl: float,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.ttl = ttl
        self.max_entries = max_entries
        self.clock = clock
        self._entries: "OrderedDict[Hashable, tuple[float, object]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> tuple[bool, object]:
        """Return (hit, data). Expired entries are dropped on read."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return False, None
        stored_at, data = entry
        if self.clock() - stored_at >= self.ttl:
            del self._entries[key]
            self.misses += 1
            return False, None
        self.hits += 1
        return True, data

    def set(self, key: Hashable, data: object) -> None:
        """Store data under key with the current clock reading (last write wins)."""
        if key in self._entries:
            del self._entries[key]
        elif self.max_entries is not None and len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
        self._entries[key] = (self.clock(), data)

    def invalidate(self, key: Hashable) -> bool:
        """Drop one key. Returns True if it was present."""
        return self._entries.pop(key, None) is not None

    def invalidate_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every key matching predicate. Returns the number removed."""
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict:
        now = self.clock()
        live = sum(1 for stored_at, _ in self._entries.values() if now - stored_at < self.ttl)
        return {
            "entries": len(self._entries),
            "live_entries": live,
            "expired_entries": len(self._entries) - live,
            "hits": self.hits,
            "misses": self.misses,
            "ttl_seconds": self.ttl,
            "max_entries": self.max_entries,
        }

    def __len__(self) -> int:
        return len(self._entries)
