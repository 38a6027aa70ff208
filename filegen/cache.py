"""A small in-memory cache with a per-instance time-to-live."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any


class TTLCache:
    """Holds ``(value, inserted_at)`` pairs and forgets them after ``ttl`` seconds.

    One instance is built by the CLI and handed to whoever needs it; there is
    no module-level cache.  ``clock`` defaults to :func:`time.monotonic` and
    can be replaced in tests.
    """

    def __init__(self, ttl: float = 3600.0, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self._clock())

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, inserted_at = entry
        if self._clock() - inserted_at > self.ttl:
            del self._entries[key]
            return None
        return value

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
