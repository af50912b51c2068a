"""Key-value store shared by the quota governor and the result cache.

Implementations must make ``incr`` atomic and raise ``StoreError`` when the
backend cannot be reached, so callers can degrade instead of failing.
"""

import time
from typing import Callable, Protocol


class StoreError(Exception):
    pass


class Store(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: float) -> None: ...

    async def incr(self, key: str, ttl: float) -> int:
        """Increment ``key`` and return the new value.

        A missing key starts at zero and expires ``ttl`` seconds after it is
        created; later increments do not extend the window.
        """
        ...


class MemoryStore:
    """In-process store. Suitable for a single worker and for tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str | int, float]] = {}

    def _live(self, key: str) -> str | int | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        value = self._live(key)
        return None if value is None else str(value)

    async def set(self, key: str, value: str, ttl: float) -> None:
        self._data[key] = (value, self._clock() + ttl)

    async def incr(self, key: str, ttl: float) -> int:
        # No await between read and write, so this is atomic on the event loop.
        current = self._live(key)
        if current is None:
            self._data[key] = (1, self._clock() + ttl)
            return 1
        value = int(current) + 1
        self._data[key] = (value, self._data[key][1])
        return value
