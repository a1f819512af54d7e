"""Process-local TTL cache used by the capability registry.

Entries expire purely by age. There is no stampede protection: two callers
racing on an expired entry both reload it, which is harmless because loads
are idempotent point lookups.
"""

import time
from typing import Callable, Dict, Generic, Hashable, List, Optional, Tuple, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """A small dictionary cache whose entries expire after ``ttl`` seconds."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        if ttl < 0:
            raise ValueError("ttl must be >= 0")
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[V, float]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        """Return the cached value, or None when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = (value, self._clock())

    def invalidate(self, key: Hashable) -> bool:
        """Evict one entry. Returns True if it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[Hashable]:
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None
