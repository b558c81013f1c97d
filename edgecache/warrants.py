"""Counted sets of warrant keys."""

from __future__ import annotations

_COUNT_MASK = 0xFFFF


class WarrantSet(dict):
    """A mapping from warrant key to the number of times it was granted.

    Counts are 16-bit unsigned values and wrap around on overflow.
    """

    def add(self, key: str) -> None:
        """Record one more occurrence of ``key``."""
        if key in self:
            self[key] = (self[key] + 1) & _COUNT_MASK
        else:
            self[key] = 1

    def has(self, key: str) -> bool:
        """Return whether ``key`` is present."""
        return key in self

    def count(self, key: str) -> int:
        """Return the count for ``key``, or 0 when it is absent."""
        return self.get(key, 0)

    def __str__(self) -> str:
        return "".join(f"\n{key} => {value}" for key, value in self.items())