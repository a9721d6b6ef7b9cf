import asyncio
from collections.abc import Hashable, Iterator


class WaitGroup:
    """
    Tracks in-flight operations by key, based on Go's sync.WaitGroup.

    Unlike a bare counter, every operation is registered under a key so that
    the same key cannot be in flight twice.

    Example:
        ```python
        wg = WaitGroup()

        wg.add("req-1")
        assert "req-1" in wg

        wg.done("req-1")
        assert len(wg) == 0

        # In close():
        await wg.wait()
        ```
    """

    def __init__(self) -> None:
        self._keys: set[Hashable] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    def add(self, key: Hashable) -> None:
        """
        Register an operation.

        Raises:
            KeyError: If the key is already in flight.
        """
        if key in self._keys:
            raise KeyError(key)
        self._keys.add(key)
        self._idle.clear()

    def done(self, key: Hashable) -> None:
        """Mark an operation finished. No-op for unknown keys."""
        self._keys.discard(key)
        if not self._keys:
            self._idle.set()

    async def wait(self) -> None:
        """Suspend until nothing is in flight."""
        await self._idle.wait()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(list(self._keys))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({len(self._keys)})"
