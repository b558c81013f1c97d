"""An in-process warrant cache."""

from __future__ import annotations

import threading
from typing import Mapping

from .repository import Repository

_COUNT_MASK = 0xFFFF


class WarrantCache:
    """A thread-safe map from warrant key to count."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}
        self._lock = threading.RLock()

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._counts

    def set(self, key: str, count: int) -> None:
        with self._lock:
            self._counts[key] = count

    def incr(self, key: str) -> None:
        with self._lock:
            if key in self._counts:
                self._counts[key] = (self._counts[key] + 1) & _COUNT_MASK
            else:
                self._counts[key] = 1

    def decr(self, key: str) -> None:
        with self._lock:
            count = self._counts.get(key)
            if count is None:
                return
            if count <= 1:
                del self._counts[key]
            else:
                self._counts[key] = count - 1

    def update(self, warrants: Mapping[str, int]) -> None:
        """Replace the contents with ``warrants``."""
        with self._lock:
            for key in list(self._counts):
                if key not in warrants:
                    del self._counts[key]
            self._counts.update(warrants)

    def clear(self) -> None:
        with self._lock:
            self._counts = {}

    def snapshot(self) -> dict[str, int]:
        """Return a copy of the current counts."""
        with self._lock:
            return dict(self._counts)


class MemoryRepository(Repository):
    """A repository backed by a :class:`WarrantCache`; ready on creation."""

    def __init__(self) -> None:
        self.cache = WarrantCache()
        self._ready = True
        self._lock = threading.Lock()

    def get(self, key: str) -> bool:
        return self.cache.contains(key)

    def set(self, key: str, count: int) -> None:
        self.cache.set(key, count)

    def incr(self, key: str) -> None:
        self.cache.incr(key)

    def decr(self, key: str) -> None:
        self.cache.decr(key)

    def update(self, warrants: Mapping[str, int]) -> None:
        self.cache.update(warrants)

    def clear(self) -> None:
        self.cache.clear()

    def set_ready(self, ready: bool) -> None:
        with self._lock:
            self._ready = ready

    def is_ready(self) -> bool:
        with self._lock:
            return self._ready