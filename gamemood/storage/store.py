"""Key-value stores backing the engine's in-process state.

Mood patterns, transitions, behavior patterns, per-user weights and the
prediction cache all live behind :class:`KeyValueStore` so that the backing
can be swapped: unbounded in tests, capacity-bounded LRU in production.
Expiry is lazy: an expired entry is removed on the next access.

Usage::

    cache = InMemoryStore(capacity=1000, default_ttl=300)
    cache.set("u1:1700000000:calm:pc", suggestions)
    cache.get("u1:1700000000:calm:pc")
    cache.delete_prefix("u1:")
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

__all__ = ["InMemoryStore", "KeyValueStore"]


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...
    def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...
    def delete(self, key: str) -> bool: ...
    def delete_prefix(self, prefix: str) -> int: ...
    def keys(self, prefix: str = "") -> list[str]: ...
    def clear(self) -> None: ...
    def close(self) -> None: ...
    def __contains__(self, key: object) -> bool: ...
    def __len__(self) -> int: ...


@dataclass(slots=True)
class _Entry:
    value: Any
    expires_at: float | None


class InMemoryStore:
    """Process-local store with optional LRU capacity and per-entry TTL.

    Parameters
    ----------
    capacity:
        Maximum number of live entries. ``None`` means unbounded. When full,
        the least recently used entry is evicted.
    default_ttl:
        Seconds an entry stays valid when :meth:`set` is called without an
        explicit ``ttl``. ``None`` disables expiry.
    clock:
        Monotonic time source; injectable for tests.
    """

    def __init__(
        self,
        capacity: int | None = None,
        default_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity is not None and capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.default_ttl = default_ttl
        self._clock = clock
        self._data: OrderedDict[str, _Entry] = OrderedDict()
        self._closed = False
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        self._check_open()
        entry = self._live_entry(key)
        if entry is None:
            self.misses += 1
            return default
        self._data.move_to_end(key)
        self.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        self._check_open()
        effective_ttl = ttl if ttl is not None else self.default_ttl
        expires_at = self._clock() + effective_ttl if effective_ttl is not None else None
        self._data[key] = _Entry(value=value, expires_at=expires_at)
        self._data.move_to_end(key)
        self._evict_overflow()

    def delete(self, key: str) -> bool:
        self._check_open()
        return self._data.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        self._check_open()
        doomed = [key for key in self._data if key.startswith(prefix)]
        for key in doomed:
            del self._data[key]
        return len(doomed)

    def keys(self, prefix: str = "") -> list[str]:
        self._check_open()
        self._purge_expired()
        return [key for key in self._data if key.startswith(prefix)]

    def items(self, prefix: str = "") -> Iterator[tuple[str, Any]]:
        for key in self.keys(prefix):
            yield key, self._data[key].value

    def clear(self) -> None:
        self._data.clear()

    def close(self) -> None:
        self._data.clear()
        self._closed = True

    def stats(self) -> dict[str, int]:
        return {
            "size": len(self),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._live_entry(key) is not None

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("store is closed")

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._data[key]
            return None
        return entry

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [
            key for key, entry in self._data.items()
            if entry.expires_at is not None and now >= entry.expires_at
        ]
        for key in expired:
            del self._data[key]

    def _evict_overflow(self) -> None:
        if self.capacity is None:
            return
        while len(self._data) > self.capacity:
            self._data.popitem(last=False)
            self.evictions += 1
