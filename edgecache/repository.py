"""The storage interface shared by all warrant caches."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Mapping


class Datastore(str, Enum):
    """Kinds of backing store for the warrant cache."""

    MEMORY = "memory"
    REDIS = "redis"


class Repository(ABC):
    """A store of warrant keys with counts and a readiness flag."""

    @abstractmethod
    def get(self, key: str) -> bool:
        """Return whether ``key`` is cached."""

    @abstractmethod
    def set(self, key: str, count: int) -> None:
        """Store ``key`` with the given count."""

    @abstractmethod
    def incr(self, key: str) -> None:
        """Increase the count of ``key`` by one, creating it if needed."""

    @abstractmethod
    def decr(self, key: str) -> None:
        """Decrease the count of ``key`` by one, removing it at zero."""

    @abstractmethod
    def update(self, warrants: Mapping[str, int]) -> None:
        """Make the cache hold exactly ``warrants``."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every cached key."""

    @abstractmethod
    def set_ready(self, ready: bool) -> None:
        """Mark the cache ready or not ready to serve."""

    @abstractmethod
    def is_ready(self) -> bool:
        """Return whether the cache is ready to serve."""