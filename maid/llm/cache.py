"""Explicit TTL cache for provider model lists."""

import time
from typing import Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")


class ModelListCache(Generic[T]):
    """Single-value cache with ``{value, fetched_at}`` and a configured TTL."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = max(0.0, float(ttl_seconds))
        self.value: T | None = None
        self.fetched_at: float | None = None
        self._clock = clock

    def is_fresh(self) -> bool:
        if self.value is None or self.fetched_at is None:
            return False
        return (self._clock() - self.fetched_at) < self.ttl_seconds

    def store(self, value: T) -> None:
        self.value = value
        self.fetched_at = self._clock()

    async def get_or_fetch(self, fetch: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value while fresh, otherwise fetch and store."""
        if self.is_fresh():
            return self.value  # type: ignore[return-value]
        value = await fetch()
        self.store(value)
        return value
