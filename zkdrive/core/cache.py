"""LRU cache utilities."""

from collections import OrderedDict
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class LRUCache(Generic[T]):
    """
    Simple LRU cache implementation.

    Thread-safe for single async context.
    """

    def __init__(
        self,
        max_size: int = 1000,
        *,
        on_evict: Callable[[str, T], None] | None = None,
    ) -> None:
        """
        Args:
            max_size: Maximum number of items to cache.
            on_evict: Called with (key, value) when an item is pushed out by capacity.
        """
        if max_size <= 0:
            msg = "max_size must be positive"
            raise ValueError(msg)
        self._max_size = max_size
        self._on_evict = on_evict
        self._cache: OrderedDict[str, T] = OrderedDict()

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, key: str) -> T | None:
        """
        Get item from cache, moving it to end (most recently used).

        Args:
            key: Cache key.

        Returns:
            Cached item or None.
        """
        if key not in self._cache:
            return None

        self._cache.move_to_end(key)
        return self._cache[key]

    def peek(self, key: str) -> T | None:
        """Get item without touching its recency."""
        return self._cache.get(key)

    def put(self, key: str, value: T) -> None:
        """
        Put item in cache, evicting the least recently used item when full.

        Args:
            key: Cache key.
            value: Value to cache.
        """
        if key in self._cache:
            self._cache.move_to_end(key)
        elif len(self._cache) >= self._max_size:
            evicted_key, evicted = self._cache.popitem(last=False)
            if self._on_evict is not None:
                self._on_evict(evicted_key, evicted)

        self._cache[key] = value

    def remove(self, key: str) -> T | None:
        """
        Remove item from cache. The eviction hook is not called.

        Returns:
            Removed item or None.
        """
        return self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all items from cache."""
        self._cache.clear()

    def values(self) -> list[T]:
        return list(self._cache.values())

    def keys(self) -> list[str]:
        """Return list of all cache keys, least recently used first."""
        return list(self._cache.keys())

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return key in self._cache
