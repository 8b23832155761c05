"""Bounded least-recently-used mapping."""

from __future__ import annotations

from collections import OrderedDict
from typing import Generic, Iterator, TypeVar


K = TypeVar("K")
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """Fixed-capacity mapping that evicts the least recently accessed key.

    Not thread-safe; owners that share it across callers guard it themselves.
    """

    def __init__(self, max_size: int = 100) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._items: OrderedDict[K, V] = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._items))

    def get(self, key: K) -> V | None:
        """Return the value for ``key`` and mark it most recently used."""
        if key not in self._items:
            return None
        self._items.move_to_end(key)
        return self._items[key]

    def peek(self, key: K) -> V | None:
        """Return the value for ``key`` without touching recency."""
        return self._items.get(key)

    def put(self, key: K, value: V) -> tuple[K, V] | None:
        """Insert or replace ``key``; return the evicted pair when full."""
        if key in self._items:
            self._items[key] = value
            self._items.move_to_end(key)
            return None

        evicted: tuple[K, V] | None = None
        if len(self._items) >= self.max_size:
            evicted = self._items.popitem(last=False)
        self._items[key] = value
        return evicted

    def pop(self, key: K) -> V | None:
        return self._items.pop(key, None)

    def items(self) -> list[tuple[K, V]]:
        return list(self._items.items())

    def clear(self) -> None:
        self._items.clear()
